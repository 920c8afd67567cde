import pytest

from py_ecu.exceptions import CategoryMismatchError
from py_ecu.unit import Length, Temperature, parse


class TestTemperature:

    @pytest.mark.parametrize(
        "text, kelvin",
        [
            ('0 K', 0.0),
            ('0 °C', 273.15),
            ('100 celsius', 373.15),
            ('32 °F', 273.15),
            ('-459.67 F', 0.0),
            ('491.67 °R', 273.15),
            ('-40 °C', 233.15),
        ]
    )
    def test_to_kelvin(self, text, kelvin):
        assert Temperature.parse(text).in_kelvin == pytest.approx(kelvin, abs=1e-9)

    def test_readouts(self):
        boiling = Temperature.celsius(100)
        assert boiling.in_fahrenheit == pytest.approx(212.0)
        assert boiling.in_celsius == pytest.approx(100.0)
        assert Temperature.fahrenheit(-40).in_celsius == pytest.approx(-40.0)
        assert Temperature.kelvin(0).get_in('°R') == pytest.approx(0.0)

    def test_offset_is_applied_once_per_direction(self):
        t = Temperature.fahrenheit(98.6).to('°C').to('K').to('°F')
        assert t.value == pytest.approx(98.6)
        assert t.symbol == '°F'

    def test_ratio_is_not_defined(self, snapshot):
        assert snapshot.get_conversion_ratio('°C', 'K') is None
        assert snapshot.convert(0, '°C', '°F') == pytest.approx(32.0)

    def test_difference(self):
        assert Temperature.celsius(30).difference(Temperature.celsius(20)) == pytest.approx(10.0)
        assert Temperature.fahrenheit(212).difference(Temperature.celsius(0)) == pytest.approx(100.0)
        with pytest.raises(CategoryMismatchError):
            Temperature.celsius(30).difference(Length.meters(1))
        with pytest.raises(TypeError):
            Temperature.celsius(30).difference(20)  # type: ignore[arg-type]

    def test_subtraction_is_a_kelvin_delta(self):
        delta = Temperature.celsius(30) - Temperature.celsius(20)
        assert not isinstance(delta, Temperature)
        assert delta == pytest.approx(10.0)
        assert Temperature.fahrenheit(212) - Temperature.kelvin(273.15) == pytest.approx(100.0)
        with pytest.raises(CategoryMismatchError):
            _ = Temperature.celsius(30) - Length.meters(1)
        with pytest.raises(TypeError):
            _ = Temperature.celsius(30) - 10  # type: ignore[operator]

    @pytest.mark.parametrize("other", [Temperature.kelvin(10), 10], ids=['temperature', 'number'])
    def test_addition_is_rejected(self, other):
        with pytest.raises(TypeError, match='shift'):
            _ = Temperature.celsius(0) + other

    def test_shift(self):
        assert Temperature.celsius(20).shift(5).in_celsius == pytest.approx(25.0)
        assert Temperature.fahrenheit(32).shift(18).in_celsius == pytest.approx(10.0)
        assert Temperature.kelvin(300).shift(-300).in_kelvin == pytest.approx(0.0)
        with pytest.raises(TypeError):
            Temperature.celsius(20).shift('5')  # type: ignore[arg-type]

    def test_ordering(self):
        assert Temperature.celsius(0) < Temperature.fahrenheit(33)
        assert Temperature.celsius(100) == Temperature.fahrenheit(212)
        assert max(Temperature.kelvin(300), Temperature.celsius(20)).symbol == 'K'

    def test_parse_dispatch(self):
        t = parse('21.5 °C')
        assert isinstance(t, Temperature)
        assert t.with_precision(1).format() == '21.5 °C'
