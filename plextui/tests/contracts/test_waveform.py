"""
Tests for block-character waveform rendering.
"""

import pytest

from plextui.ui.waveform import BLOCKS, FULL, STYLES, render_waveform, resample


class TestResample:

    def test_same_length_is_identity(self):
        assert list(resample([0.0, 0.5, 1.0], 3)) == pytest.approx([0.0, 0.5, 1.0])

    def test_linear_interpolation(self):
        assert list(resample([0.0, 1.0], 5)) == pytest.approx([0.0, 0.25, 0.5, 0.75, 1.0])

    def test_empty_and_single(self):
        assert list(resample([], 4)) == [0.0] * 4
        assert list(resample([0.3], 3)) == pytest.approx([0.3] * 3)

    def test_clamps(self):
        assert list(resample([-1.0, 2.0], 2)) == pytest.approx([0.0, 1.0])


class TestRenderWaveform:

    @pytest.mark.parametrize("style", STYLES)
    def test_shape(self, style):
        rows = render_waveform([0.1, 0.9, 0.4], width=17, height=5, style=style)
        assert len(rows) == 5
        assert all(len(row) == 17 for row in rows)

    @pytest.mark.parametrize("style", ["bars", "mirrored"])
    def test_silence_is_blank(self, style):
        rows = render_waveform([0.0] * 10, width=10, height=4, style=style)
        assert all(set(row) == {" "} for row in rows)

    def test_full_bars(self):
        rows = render_waveform([1.0] * 10, width=10, height=3, style="bars")
        assert rows == [FULL * 10] * 3

    def test_half_bar(self):
        rows = render_waveform([0.5], width=1, height=2, style="bars")
        assert rows == [" ", FULL]

    def test_partial_cell_uses_eighth_blocks(self):
        rows = render_waveform([0.25], width=1, height=1, style="bars")
        assert rows == [BLOCKS[1]]

    def test_mirrored_is_symmetric_for_full_level(self):
        rows = render_waveform([1.0] * 4, width=4, height=4, style="mirrored")
        assert rows == [FULL * 4] * 4

    def test_mirrored_grows_from_centre(self):
        rows = render_waveform([0.5] * 3, width=3, height=4, style="mirrored")
        assert rows[0] == "   "
        assert rows[1] == FULL * 3
        assert rows[2] == FULL * 3
        assert rows[3] == "   "

    def test_line_marks_one_cell_per_column(self):
        rows = render_waveform([0.0, 1.0], width=2, height=3, style="line")
        column0 = [row[0] for row in rows]
        column1 = [row[1] for row in rows]
        assert column0 == [" ", " ", BLOCKS[0]]
        assert column1 == [FULL, " ", " "]

    def test_degenerate_sizes(self):
        assert render_waveform([0.5], width=0, height=3) == []
        assert render_waveform([0.5], width=3, height=0) == []

    def test_unknown_style(self):
        with pytest.raises(ValueError):
            render_waveform([0.5], width=3, height=3, style="sparkle")
