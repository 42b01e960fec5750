"""
Unit tests for transcoder.py. subprocess.run is mocked; ffmpeg is never executed.
"""

import json
import subprocess
import tempfile
import unittest
import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

import transcoder as tc

PROBE_JSON = json.dumps({
    "streams": [
        {"codec_type": "video", "width": 1080, "height": 1920, "codec_name": "h264", "pix_fmt": "yuv420p"},
        {"codec_type": "audio", "codec_name": "aac"},
    ],
    "format": {"duration": "7.250"},
})
VIDEO_ONLY_JSON = json.dumps({
    "streams": [{"codec_type": "video", "width": 720, "height": 1280, "codec_name": "h264", "pix_fmt": "yuv420p"}],
    "format": {"duration": "4.000"},
})


class FakeRun:
    """Records commands; ffprobe returns PROBE_JSON, ffmpeg writes its output file."""

    def __init__(self, returncode=0, stderr="", probe_json=PROBE_JSON):
        self.calls = []
        self.probe_json = probe_json
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if cmd[0] == "ffprobe":
            return subprocess.CompletedProcess(cmd, 0, stdout=self.probe_json, stderr="")
        if self.returncode == 0:
            Path(cmd[-1]).write_bytes(b"x")
        return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr=self.stderr)

    @property
    def ffmpeg_calls(self):
        return [c for c in self.calls if c[0] == "ffmpeg"]


class TestFilters(unittest.TestCase):
    def test_portrait_trim_filter(self):
        graph = tc.portrait_trim_filter(2.0, 5.5, 3.5, 1.0)
        self.assertIn("trim=start=2.000:end=5.500", graph)
        self.assertIn("boxblur=32:2", graph)
        self.assertIn("tpad=stop_mode=clone:stop_duration=1.000", graph)
        self.assertIn("trim=0:3.500", graph)
        self.assertTrue(graph.endswith("[vout]"))

    def test_portrait_trim_filter_clamps(self):
        graph = tc.portrait_trim_filter(-3, None, 0, None)
        self.assertIn("trim=start=0.000:end=0.000", graph)
        self.assertIn("trim=0:0.200", graph)

    def test_ken_burns_directions(self):
        ltr = tc.ken_burns_filter(5.0, "ltr")
        rtl = tc.ken_burns_filter(5.0, "rtl")
        self.assertIn("scale=1512:2688", ltr)
        self.assertIn("x='(iw-1080)*t/5.000'", ltr)
        self.assertIn("x='(iw-1080)-(iw-1080)*t/5.000'", rtl)

    def test_concat_list_line_escapes_quotes(self):
        line = tc.concat_list_line("/tmp/it's.mp4")
        self.assertTrue(line.startswith("file '"))
        self.assertIn("it'\\''s.mp4", line)


class TestMediaInfo(unittest.TestCase):
    def test_matches_ignores_audio_and_duration(self):
        a = tc.MediaInfo(1080, 1920, "h264", "yuv420p", True, 3.0)
        b = tc.MediaInfo(1080, 1920, "h264", "yuv420p", False, 9.0)
        self.assertTrue(a.matches(b))
        self.assertFalse(a.matches(tc.MediaInfo(720, 1280, "h264", "yuv420p")))


class TestFFmpegTranscoder(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.t = tc.FFmpegTranscoder(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe")

    def tearDown(self):
        self.tmp.cleanup()

    @patch("transcoder.subprocess.run")
    def test_probe(self, mock_run):
        mock_run.side_effect = FakeRun()
        info = self.t.probe("clip.mp4")
        self.assertEqual((info.width, info.height, info.codec, info.pixel_format), (1080, 1920, "h264", "yuv420p"))
        self.assertTrue(info.has_audio)
        self.assertAlmostEqual(self.t.duration("clip.mp4"), 7.25)

    @patch("transcoder.subprocess.run")
    def test_trim_loops_short_input(self, mock_run):
        fake = FakeRun()
        mock_run.side_effect = fake
        out = self.t.trim("in.mp4", self.root / "out.mp4", 0.0, 4.0, tail=1.0, loop=True)
        cmd = fake.ffmpeg_calls[0]
        self.assertTrue(out.exists())
        self.assertEqual(cmd[cmd.index("-stream_loop") + 1], "-1")
        self.assertIn("-an", cmd)
        self.assertEqual(cmd[cmd.index("-map") + 1], "[vout]")

    @patch("transcoder.subprocess.run")
    def test_mux_delays_audio(self, mock_run):
        fake = FakeRun()
        mock_run.side_effect = fake
        self.t.mux("v.mp4", "a.mp3", self.root / "m.mp4", audio_delay=0.5)
        cmd = fake.ffmpeg_calls[0]
        self.assertEqual(cmd[cmd.index("-filter:a") + 1], "adelay=500|500,aresample=async=1")
        self.assertEqual(cmd[cmd.index("-t") + 1], "7.250")

    @patch("transcoder.subprocess.run")
    def test_concatenate_removes_list(self, mock_run):
        fake = FakeRun()
        mock_run.side_effect = fake
        out = self.root / "joined.mp4"
        self.t.concatenate([self.root / "a.mp4", self.root / "b.mp4"], out)
        cmd = fake.ffmpeg_calls[0]
        self.assertIn("concat", cmd)
        self.assertFalse(out.with_suffix(".txt").exists())

    @patch("transcoder.subprocess.run")
    def test_mix_music_volume(self, mock_run):
        fake = FakeRun()
        mock_run.side_effect = fake
        self.t.mix_music("v.mp4", "m.mp3", self.root / "mixed.mp4", 0.16)
        graph = fake.ffmpeg_calls[0][fake.ffmpeg_calls[0].index("-filter_complex") + 1]
        self.assertIn("[1:a]volume=0.160", graph)
        self.assertIn("amix=inputs=2:duration=first", graph)

    @patch("transcoder.subprocess.run")
    def test_normalize_keeps_existing_audio(self, mock_run):
        fake = FakeRun()
        mock_run.side_effect = fake
        self.t.normalize("clip.mp4", self.root / "n.mp4")
        cmd = fake.ffmpeg_calls[0]
        self.assertNotIn("lavfi", cmd)
        self.assertEqual(cmd[cmd.index("-c:a") + 1], "aac")

    @patch("transcoder.subprocess.run")
    def test_normalize_adds_silent_track_when_source_has_none(self, mock_run):
        fake = FakeRun(probe_json=VIDEO_ONLY_JSON)
        mock_run.side_effect = fake
        self.t.normalize("outro.mp4", self.root / "n.mp4")
        cmd = fake.ffmpeg_calls[0]
        self.assertEqual(cmd[cmd.index("lavfi") + 2], "anullsrc=channel_layout=stereo:sample_rate=44100")
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        self.assertEqual(maps, ["0:v:0", "1:a:0"])
        self.assertIn("-shortest", cmd)

    @patch("transcoder.subprocess.run")
    def test_failure_carries_stderr(self, mock_run):
        mock_run.side_effect = FakeRun(returncode=1, stderr="Invalid data found")
        with self.assertRaises(RuntimeError) as ctx:
            self.t.normalize("bad.mp4", self.root / "n.mp4")
        self.assertIn("Invalid data found", str(ctx.exception))

    @patch("transcoder.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ffmpeg", timeout=30)
        with self.assertRaises(RuntimeError) as ctx:
            self.t.ken_burns("img.jpg", self.root / "kb.mp4", 5.0)
        self.assertIn("timed out", str(ctx.exception))

    @patch("transcoder.subprocess.run")
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        with self.assertRaises(RuntimeError):
            self.t.add_silent_audio("v.mp4", self.root / "s.mp4")

    @patch("transcoder.subprocess.run")
    def test_missing_output_is_error(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        with self.assertRaises(RuntimeError):
            self.t.image_to_video("img.jpg", self.root / "still.mp4", 5.0)


class TestFindFFmpeg(unittest.TestCase):
    @patch("transcoder.shutil.which", return_value="/usr/bin/ffmpeg")
    def test_system_binary_preferred(self, _which):
        self.assertEqual(tc._find_ffmpeg(), "/usr/bin/ffmpeg")

    @patch("transcoder.imageio_ffmpeg.get_ffmpeg_exe", return_value="/bundled/ffmpeg")
    @patch("transcoder.shutil.which", return_value=None)
    def test_bundled_fallback(self, _which, _bundled):
        self.assertEqual(tc._find_ffmpeg(), "/bundled/ffmpeg")


if __name__ == "__main__":
    unittest.main()
