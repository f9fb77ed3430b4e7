"""Tests for the command line interface."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from PIL import Image

from samlayer import cli
from samlayer.enums import Category
from samlayer.exceptions import InvalidArgumentError


@pytest.fixture
def fake_engine(monkeypatch: pytest.MonkeyPatch, mock_engine: MagicMock) -> MagicMock:
    """Replace the SAM2 engine with the mock engine."""
    monkeypatch.setattr(cli, "Sam2Engine", lambda model_id=None: mock_engine)
    return mock_engine


@pytest.fixture
def input_image(tmp_path: Path) -> Path:
    """Write a 40x20 input image."""
    path = tmp_path / "input.png"
    Image.new("RGB", (40, 20), color="green").save(path)
    return path


class TestParsePrompts:
    """Tests for prompt argument parsing."""

    def test_types_default_to_foreground(self) -> None:
        """Points without types are foreground."""
        points, boxes = cli.parse_prompts(["1,2", "3,4"], None, None)

        assert [p.category for p in points] == [Category.FOREGROUND, Category.FOREGROUND]
        assert points[1].coordinates == (3.0, 4.0)
        assert boxes == []

    def test_explicit_types(self) -> None:
        """Types map to categories in order."""
        points, _ = cli.parse_prompts(["1,2", "3,4"], [1, 0], None)

        assert [p.category for p in points] == [Category.FOREGROUND, Category.BACKGROUND]

    def test_box(self) -> None:
        """Boxes parse into start and end corners."""
        _, boxes = cli.parse_prompts(None, None, ["1,2,30,40"])

        assert boxes[0].start == (1.0, 2.0)
        assert boxes[0].end == (30.0, 40.0)

    @pytest.mark.parametrize(
        ("points", "types", "boxes"),
        [
            (None, None, None),
            (["1,2"], [1, 0], None),
            (["1,2"], [2], None),
            (["1"], None, None),
            (["a,b"], None, None),
            (None, None, ["1,2,3"]),
        ],
    )
    def test_invalid(self, points, types, boxes) -> None:
        """Malformed or missing prompts raise InvalidArgumentError."""
        with pytest.raises(InvalidArgumentError):
            cli.parse_prompts(points, types, boxes)


class TestMain:
    """Tests for main exit codes and outputs."""

    def test_point_writes_outputs(self, fake_engine: MagicMock, input_image: Path, tmp_path: Path) -> None:
        """A point prompt writes the composite and the mask."""
        output = tmp_path / "out" / "composite.png"
        mask_path = tmp_path / "out" / "mask.png"

        code = cli.main(["-i", str(input_image), "-p", "30,10", "-o", str(output), "-k", str(mask_path)])

        assert code == 0
        with Image.open(output) as composite:
            assert composite.size == (40, 20)
            assert composite.mode == "RGB"
        with Image.open(mask_path) as mask:
            assert mask.size == (40, 20)
            assert mask.getpixel((35, 10)) == 255
            assert mask.getpixel((2, 10)) == 0
        fake_engine.load.assert_called_once()

    def test_box_prompt(self, fake_engine: MagicMock, input_image: Path, tmp_path: Path) -> None:
        """A box prompt sends both corners to the engine."""
        output = tmp_path / "composite.png"

        assert cli.main(["-i", str(input_image), "-b", "0,0,40,20", "-o", str(output)]) == 0

        _, labels = fake_engine.encode_prompt.call_args[0]
        assert list(labels) == [2, 3]
        assert output.exists()

    def test_no_prompts_is_usage_error(self, fake_engine: MagicMock, input_image: Path, tmp_path: Path) -> None:
        """Missing prompts exit with the usage code before loading the model."""
        assert cli.main(["-i", str(input_image), "-o", str(tmp_path / "out.png")]) == cli.EXIT_USAGE
        fake_engine.load.assert_not_called()

    def test_type_mismatch_is_usage_error(self, fake_engine: MagicMock, input_image: Path, tmp_path: Path) -> None:
        """More types than points is a usage error."""
        argv = ["-i", str(input_image), "-p", "1,1", "-y", "1", "-y", "0", "-o", str(tmp_path / "out.png")]

        assert cli.main(argv) == cli.EXIT_USAGE

    def test_bad_opacity_is_usage_error(self, fake_engine: MagicMock, input_image: Path, tmp_path: Path) -> None:
        """Opacity outside [0, 1] is rejected."""
        argv = ["-i", str(input_image), "-p", "1,1", "--opacity", "1.5", "-o", str(tmp_path / "out.png")]

        assert cli.main(argv) == cli.EXIT_USAGE

    def test_missing_image_fails(self, fake_engine: MagicMock, tmp_path: Path) -> None:
        """An unreadable input exits with the failure code."""
        argv = ["-i", str(tmp_path / "missing.png"), "-p", "1,1", "-o", str(tmp_path / "out.png")]

        assert cli.main(argv) == cli.EXIT_FAILURE
        assert not (tmp_path / "out.png").exists()

    def test_model_load_failure(self, fake_engine: MagicMock, input_image: Path, tmp_path: Path) -> None:
        """A model that cannot load exits with the failure code."""
        fake_engine.load.side_effect = RuntimeError("no weights")

        assert cli.main(["-i", str(input_image), "-p", "1,1", "-o", str(tmp_path / "out.png")]) == cli.EXIT_FAILURE

    def test_missing_output_argument(self) -> None:
        """argparse rejects a missing output path."""
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["-i", "in.png", "-p", "1,1"])
        assert exc_info.value.code == 2


class TestVideo:
    """Tests for video mode."""

    def test_frames_written_per_index(
        self, fake_engine: MagicMock, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """Each processed frame gets its own numbered output."""

        def frames(path: Path, stride: int) -> Iterator[tuple[int, Image.Image]]:
            assert stride == 2
            yield 0, Image.new("RGB", (40, 20))
            yield 2, Image.new("RGB", (40, 20))

        monkeypatch.setattr(cli, "iter_video_frames", frames)
        output = tmp_path / "frames" / "dog.png"

        code = cli.main(
            ["--video", "clip.mp4", "-t", "dog", "-p", "30,10", "-o", str(output), "--frame-stride", "2"]
        )

        assert code == 0
        assert (tmp_path / "frames" / "dog_00000.png").exists()
        assert (tmp_path / "frames" / "dog_00002.png").exists()
        assert fake_engine.encode_image.call_count == 2

    def test_empty_video_fails(self, fake_engine: MagicMock, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """A video without frames exits with the failure code."""
        monkeypatch.setattr(cli, "iter_video_frames", lambda path, stride: iter(()))

        assert cli.main(["--video", "clip.mp4", "-p", "1,1", "-o", str(tmp_path / "out.png")]) == cli.EXIT_FAILURE
