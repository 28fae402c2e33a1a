"""
Unit tests for Polar Diagram module.

Tests polar interpolation, symmetry, clamping, loading and VMG optimization.
"""

import json
import math

import pytest

from racesim.boat.polar import Polar, PolarTable, twa_of


class TestPolarTable:
    """Tests for PolarTable dataclass."""

    def test_imoca_polar_structure(self, polar):
        """IMOCA polar should have one row per TWS and one column per TWA."""
        table = polar.table
        assert table.name == 'imoca60'
        assert len(table.speeds) == len(table.tws)
        assert all(len(row) == len(table.twa) for row in table.speeds)

    def test_imoca_twa_range(self, polar):
        """TWA range should cover 0 to 180 degrees."""
        assert polar.table.twa[0] == 0
        assert polar.table.twa[-1] == 180

    def test_ragged_rows_rejected(self):
        """Rows must share the TWA key set."""
        with pytest.raises(ValueError):
            PolarTable(name='bad', tws=[0, 10], twa=[0, 90], speeds=[[0, 0], [0]])

    def test_unsorted_keys_rejected(self):
        with pytest.raises(ValueError):
            PolarTable(name='bad', tws=[10, 0], twa=[0, 90], speeds=[[0, 5], [0, 0]])


class TestSpeedAt:
    """Tests for speed_at bilinear interpolation."""

    def test_exact_grid_point(self, polar):
        """Speed at exact grid point should match table."""
        table = polar.table
        i = table.tws.index(12)
        j = table.twa.index(90)
        assert polar.speed_at(12, 90) == pytest.approx(table.speeds[i][j])

    def test_interpolation_between_points(self, polar):
        """Interpolated speed should be between grid points."""
        low = polar.speed_at(10, 80)
        high = polar.speed_at(10, 90)
        mid = polar.speed_at(10, 85)

        assert min(low, high) <= mid <= max(low, high)
        assert mid == pytest.approx((low + high) / 2)

    def test_bilinear_centre_of_cell(self):
        """Centre of a cell is the mean of its four corners."""
        polar = Polar(PolarTable(name='square', tws=[0, 10], twa=[0, 90],
                                 speeds=[[0.0, 2.0], [4.0, 10.0]]))
        assert polar.speed_at(5, 45) == pytest.approx(4.0)

    def test_zero_speed_at_zero_wind(self, polar):
        assert polar.speed_at(0, 90) == 0.0

    def test_negative_twa_normalized(self, polar):
        """Negative TWA should give the same speed as positive."""
        assert polar.speed_at(12, -45) == pytest.approx(polar.speed_at(12, 45))

    def test_twa_over_180_folded(self, polar):
        """TWA over 180 folds back onto the other side."""
        assert polar.speed_at(12, 270) == pytest.approx(polar.speed_at(12, 90))
        assert polar.speed_at(12, 315) == pytest.approx(polar.speed_at(12, 45))

    @pytest.mark.parametrize('tws', [4, 11, 18, 27])
    @pytest.mark.parametrize('twa', [0.5, 10, 135, 179.5])
    def test_port_starboard_symmetry(self, polar, tws, twa):
        """Speed is the same on either side of the wind, including near 0 and 180."""
        assert polar.speed_at(tws, twa) == pytest.approx(polar.speed_at(tws, 360 - twa))
        assert polar.speed_at(tws, twa) == pytest.approx(polar.speed_at(tws, -twa))

    def test_continuous_toward_fold(self, polar):
        """Speeds approach the 180 value smoothly from both sides."""
        at_180 = polar.speed_at(15, 180)
        assert polar.speed_at(15, 179.999) == pytest.approx(at_180, abs=1e-3)
        assert polar.speed_at(15, 180.001) == pytest.approx(at_180, abs=1e-3)

    def test_tws_clamped_above_table(self, polar):
        """Wind stronger than the table uses the top row."""
        assert polar.speed_at(200, 90) == pytest.approx(polar.speed_at(polar.table.tws[-1], 90))

    def test_tws_clamped_below_table(self, polar):
        assert polar.speed_at(-5, 90) == pytest.approx(polar.speed_at(0, 90))

    def test_degenerate_single_row(self):
        """A single-row table interpolates along TWA only."""
        polar = Polar(PolarTable(name='one', tws=[10], twa=[0, 90, 180],
                                 speeds=[[0.0, 8.0, 6.0]]))
        assert polar.speed_at(25, 45) == pytest.approx(4.0)


class TestTwaOf:
    """Tests for twa_of."""

    def test_beam_reach(self):
        assert twa_of(90, 0) == pytest.approx(90)

    def test_wraps_across_north(self):
        assert twa_of(350, 10) == pytest.approx(20)

    def test_dead_downwind(self):
        assert twa_of(180, 0) == pytest.approx(180)


class TestLoading:
    """Tests for loading polars from JSON."""

    def test_from_dict_nested_format(self):
        polar = Polar.from_dict({
            '0': {'0': 0, '90': 0},
            '10': {'0': 0, '90': 8.5},
        })
        assert polar.speed_at(10, 90) == pytest.approx(8.5)
        assert polar.table.tws == [0.0, 10.0]

    def test_from_dict_mismatched_twa_keys(self):
        with pytest.raises(ValueError):
            Polar.from_dict({'0': {'0': 0, '90': 0}, '10': {'0': 0, '80': 8}})

    def test_from_json_nested(self, tmp_path):
        path = tmp_path / 'boat.json'
        path.write_text(json.dumps({'5': {'0': 0, '90': 4}, '15': {'0': 0, '90': 12}}))

        polar = Polar.from_json(str(path))

        assert polar.name == 'boat'
        assert polar.speed_at(10, 90) == pytest.approx(8.0)

    def test_from_json_table(self, tmp_path):
        path = tmp_path / 'table.json'
        path.write_text(json.dumps({
            'name': 'mini', 'tws': [0, 20], 'twa': [0, 180], 'speeds': [[0, 0], [0, 10]],
        }))

        polar = Polar.from_json(str(path))

        assert polar.name == 'mini'
        assert polar.speed_at(20, 90) == pytest.approx(5.0)


class TestCurves:
    """Tests for polar curve and max speed."""

    def test_polar_curve_covers_table_angles(self, polar):
        curve = polar.polar_curve(12)
        assert [twa for twa, _ in curve] == polar.table.twa
        assert all(speed >= 0 for _, speed in curve)

    def test_max_speed(self, polar):
        assert polar.max_speed() == max(max(row) for row in polar.table.speeds)


class TestVMG:
    """Tests for VMG optimization."""

    def test_upwind_angle_in_range(self, polar):
        twa = polar.optimal_vmg_angle(12, upwind=True)
        assert 20 <= twa <= 90

    def test_downwind_angle_in_range(self, polar):
        twa = polar.optimal_vmg_angle(12, upwind=False)
        assert 90 <= twa <= 180

    def test_upwind_angle_is_best(self, polar):
        """No other upwind angle beats the optimum."""
        best = polar.optimal_vmg_angle(16, upwind=True)
        best_vmg = polar.speed_at(16, best) * math.cos(math.radians(best))
        for twa in range(20, 91):
            assert polar.speed_at(16, twa) * math.cos(math.radians(twa)) <= best_vmg + 1e-9

    def test_heading_keeps_side_of_wind(self, polar):
        """VMG heading stays on the boat's current side of the wind."""
        optimal = polar.optimal_vmg_angle(14, upwind=True)

        port = polar.optimal_vmg_heading(0, 14, heading=60, upwind=True)
        starboard = polar.optimal_vmg_heading(0, 14, heading=300, upwind=True)

        assert port == pytest.approx(optimal)
        assert starboard == pytest.approx(360 - optimal)

    def test_heading_downwind(self, polar):
        optimal = polar.optimal_vmg_angle(14, upwind=False)

        heading = polar.optimal_vmg_heading(0, 14, heading=150, upwind=False)

        assert heading == pytest.approx(optimal)

    def test_heading_mode_from_current_twa(self, polar):
        """Without a forced mode, a broad reach picks the downwind optimum."""
        optimal = polar.optimal_vmg_angle(14, upwind=False)
        assert polar.optimal_vmg_heading(0, 14, heading=200) == pytest.approx(360 - optimal)
