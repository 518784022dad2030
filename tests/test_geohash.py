# tests/test_geohash.py
import pytest

from geosearch.errors import GeocodeError
from geosearch.geo import geohash
from geosearch.geo.geohash import decode, encode, next_prefix
from test_utils import print_test_name, print_test_result


class TestEncode:
    """Encodage : valeurs connues, déterminisme, validation."""

    def test_known_values(self):
        assert encode(42.6, -5.6, 5) == "ezs42"
        assert encode(57.64911, 10.40744, 11) == "u4pruydqqvj"

    def test_deterministic(self):
        first = encode(37.3382, -121.8863, 9)
        assert all(encode(37.3382, -121.8863, 9) == first for _ in range(10))

    def test_prefix_property(self):
        """Le geohash à précision p est le préfixe du geohash à précision 9."""
        full = encode(37.3382, -121.8863, 9)
        for precision in range(1, 10):
            assert encode(37.3382, -121.8863, precision) == full[:precision]

    @pytest.mark.parametrize("lat,lng", [
        (90.0001, 0.0), (-91, 0.0), (0.0, 180.5), (0.0, -181), (float("nan"), 0.0), ("abc", 1.0),
    ])
    def test_invalid_coordinates(self, lat, lng):
        with pytest.raises(GeocodeError):
            encode(lat, lng, 9)

    @pytest.mark.parametrize("precision", [0, 13, -1, 2.5, True])
    def test_invalid_precision(self, precision):
        with pytest.raises(GeocodeError):
            encode(10.0, 10.0, precision)

    def test_edges_are_encodable(self):
        assert encode(90.0, 180.0, 6) == "zzzzzz"
        assert encode(-90.0, -180.0, 6) == "000000"


class TestDecode:
    """Décodage : la cellule contient le point d'origine."""

    def test_round_trip_grid(self):
        test_name = "test_round_trip_grid"
        print_test_name(test_name)
        try:
            for lat in range(-90, 91, 15):
                for lng in range(-180, 181, 30):
                    for precision in (1, 3, 5, 7, 9, 12):
                        box = decode(encode(lat + 0.123 if lat < 90 else lat, lng, precision))
                        assert box.contains(lat + 0.123 if lat < 90 else lat, lng)
            print_test_result(test_name, passed=True)
        except Exception as e:
            print_test_result(test_name, passed=False)
            raise e

    def test_round_trip_extremes(self):
        for lat, lng in [(90.0, 180.0), (-90.0, -180.0), (0.0, 0.0), (-0.0000001, -0.0000001)]:
            assert decode(encode(lat, lng, 9)).contains(lat, lng)

    def test_known_cell(self):
        box = decode("ezs42")
        lat, lng = box.center
        assert lat == pytest.approx(42.605, abs=0.01)
        assert lng == pytest.approx(-5.603, abs=0.01)

    def test_uppercase_accepted(self):
        assert decode("EZS42") == decode("ezs42")

    @pytest.mark.parametrize("value", ["", "abc", "ezs4i", "0123456789bcd", None])
    def test_invalid_hash(self, value):
        with pytest.raises(GeocodeError):
            decode(value)


class TestCellGrid:
    """Grille (ligne, colonne) utilisée pour couvrir un cercle."""

    @pytest.mark.parametrize("lat,lng", [
        (37.3382, -121.8863), (-33.8688, 151.2093), (0.2, 179.99), (89.9, 10.0), (64.1466, -21.9426),
    ])
    def test_cell_at_matches_encode(self, lat, lng):
        for precision in (2, 4, 6, 9):
            row, column = geohash.cell_indices(lat, lng, precision)
            assert geohash.cell_at(row, column, precision) == encode(lat, lng, precision)

    def test_adjacent_cells_touch(self):
        row, column = geohash.cell_indices(37.3382, -121.8863, 5)
        here = decode(geohash.cell_at(row, column, 5))
        north = decode(geohash.cell_at(row + 1, column, 5))
        east = decode(geohash.cell_at(row, column + 1, 5))
        assert north.min_lat == pytest.approx(here.max_lat)
        assert east.min_lng == pytest.approx(here.max_lng)

    def test_edges_clamped_to_last_cell(self):
        lat_bits, lng_bits = geohash.cell_bits(3)
        assert geohash.cell_indices(90.0, 180.0, 3) == ((1 << lat_bits) - 1, (1 << lng_bits) - 1)
        assert geohash.cell_at((1 << lat_bits) - 1, (1 << lng_bits) - 1, 3) == "zzz"

    @pytest.mark.parametrize("row,column", [(-1, 0), (0, -1), (128, 0), (0, 256)])
    def test_index_out_of_range(self, row, column):
        with pytest.raises(GeocodeError):
            geohash.cell_at(row, column, 3)


class TestNextPrefix:
    """Borne haute exclusive d'une plage de préfixe."""

    def test_simple_increment(self):
        assert next_prefix("9q9k") == "9q9m"

    def test_carry(self):
        assert next_prefix("9q9z") == "9qb"

    def test_all_z(self):
        assert next_prefix("zzz") is None

    def test_range_covers_exactly_the_prefix(self):
        start = "9q9z"
        end = next_prefix(start)
        assert start <= "9q9zzzzzz" < end
        assert not "9qb000000" < end
