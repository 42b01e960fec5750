"""
Unit tests for scene_pipeline.py with fake clip search, TTS and transcoder.
"""

import tempfile
import threading
import time
import unittest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import scene_pipeline as sp
from clip_search import ClipResult
from script_segmenter import Scene

BLOB = b"x" * 20000


class FakeTranscoder:
    def __init__(self, clip_seconds=20.0, audio_seconds=2.0):
        self.clip_seconds = clip_seconds
        self.audio_seconds = audio_seconds
        self.trims = []
        self.muxes = []
        self._lock = threading.Lock()

    def duration(self, path):
        return self.audio_seconds if Path(path).suffix == ".mp3" else self.clip_seconds

    def trim(self, src, out, start, duration, tail=0, loop=False):
        with self._lock:
            self.trims.append((Path(src).name, start, duration, loop))
        Path(out).write_bytes(BLOB)

    def mux(self, video, audio, out, audio_delay=0):
        with self._lock:
            self.muxes.append((Path(video).name, Path(audio).name, audio_delay))
        Path(out).write_bytes(BLOB)


class FakeClipSearch:
    def __init__(self, missing=(), delays=None):
        self.missing = set(missing)
        self.delays = delays or {}

    def find_clip(self, subject, work_dir, scene_idx=0):
        time.sleep(self.delays.get(scene_idx, 0))
        if subject in self.missing:
            return None
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        path = work_dir / f"clip-{scene_idx}.mp4"
        path.write_bytes(BLOB)
        return ClipResult(path=path, source="pexels", ref=f"https://v/{subject}.mp4", subject=subject)


def _fake_tts(calls):
    def synthesize(text, voice, provider, out_path):
        calls.append(text)
        Path(out_path).write_bytes(BLOB)
    return synthesize


class PipelineTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.tts_calls = []
        self.transcoder = FakeTranscoder()

    def tearDown(self):
        self.tmp.cleanup()

    def make_pipeline(self, clip_search=None, transcoder=None):
        ctx = sp.PipelineContext(
            job_id="job1",
            work_dir=self.root / "jobs" / "job1",
            voice="Joanna",
            provider="polly",
            clip_search=clip_search or FakeClipSearch(),
            transcoder=transcoder or self.transcoder,
            audio_cache=sp.AudioCache(self.root / "audio", synthesize=_fake_tts(self.tts_calls), min_bytes=100),
            mux_cache=sp.MuxCache(self.root / "video", min_bytes=100),
            lead_in=0.5,
            trail_out=1.0,
        )
        return sp.ScenePipeline(ctx)


class TestHelpers(unittest.TestCase):
    def test_cache_key_order_independent(self):
        self.assertEqual(sp.cache_key(text="a", voice="v"), sp.cache_key(voice="v", text="a"))
        self.assertNotEqual(sp.cache_key(text="a", voice="v"), sp.cache_key(text="a", voice="w"))

    def test_unique_name(self):
        a, b = sp.unique_name("scene1"), sp.unique_name("scene1")
        self.assertNotEqual(a, b)
        self.assertTrue(a.startswith("scene1-") and a.endswith(".mp4"))

    def test_assert_artifact(self):
        with tempfile.TemporaryDirectory() as tmp:
            small = Path(tmp) / "small.mp4"
            small.write_bytes(b"x")
            with self.assertRaises(sp.ArtifactError):
                sp.assert_artifact(small, "clip", 10)
            with self.assertRaises(sp.ArtifactError):
                sp.assert_artifact(Path(tmp) / "missing.mp4", "clip")
            self.assertEqual(sp.assert_artifact(small, "clip", 1), small)

    def test_plan_mega_split(self):
        long_plan = sp.plan_mega_split(30.0, 2.0, 3.0, 0.5, 1.0)
        self.assertEqual((long_plan.start1, long_plan.length1), (0.0, 3.5))
        self.assertEqual((long_plan.start2, long_plan.length2), (3.5, 4.5))
        short_plan = sp.plan_mega_split(6.0, 2.0, 3.0, 0.5, 1.0)
        self.assertEqual(short_plan.start2, 0.0)

    def test_scene_error_message(self):
        self.assertEqual(str(sp.SceneError(1, "boom")), "Scene 2: boom")


class TestContentCache(unittest.TestCase):
    def test_second_call_is_hit(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = sp.ContentCache(tmp, ".mp3", 100, "audio")
            builds = []

            def build(path):
                builds.append(path)
                Path(path).write_bytes(BLOB)

            first, hit1 = cache.get_or_create(build, text="hi", voice="v")
            second, hit2 = cache.get_or_create(build, text="hi", voice="v")
            self.assertEqual(first, second)
            self.assertEqual((hit1, hit2), (False, True))
            self.assertEqual(len(builds), 1)
            self.assertEqual(list(Path(tmp).glob("*.tmp*")), [])

    def test_small_file_is_rebuilt(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = sp.ContentCache(tmp, ".mp3", 100, "audio")
            cache.path_for(text="hi").write_bytes(b"tiny")
            _, hit = cache.get_or_create(lambda p: Path(p).write_bytes(BLOB), text="hi")
            self.assertFalse(hit)

    def test_bad_build_leaves_nothing(self):
        with tempfile.TemporaryDirectory() as tmp:
            cache = sp.ContentCache(tmp, ".mp3", 100, "audio")
            with self.assertRaises(sp.ArtifactError):
                cache.get_or_create(lambda p: Path(p).write_bytes(b"x"), text="hi")
            self.assertEqual(list(Path(tmp).iterdir()), [])


class TestAudioCache(PipelineTestCase):
    def test_synthesizes_cleaned_text_once(self):
        cache = sp.AudioCache(self.root / "audio", synthesize=_fake_tts(self.tts_calls), min_bytes=100)
        a = cache.narration("Cats & dogs!", "Joanna", "polly")
        b = cache.narration("Cats & dogs!", "Joanna", "polly")
        self.assertEqual(a, b)
        self.assertEqual(self.tts_calls, ["Cats dogs!"])

    def test_voice_changes_key(self):
        cache = sp.AudioCache(self.root / "audio", synthesize=_fake_tts(self.tts_calls), min_bytes=100)
        self.assertNotEqual(cache.narration("Hi there", "Joanna", "polly"), cache.narration("Hi there", "Matthew", "polly"))


class TestProcessScene(PipelineTestCase):
    def test_normal_scene(self):
        pipeline = self.make_pipeline()
        out = pipeline.process_scene(Scene(id="s1", texts=["Goats faint."], visual_subject="goat"), 0)
        self.assertEqual(len(out), 1)
        self.assertTrue(out[0].exists())
        src, start, length, loop = self.transcoder.trims[0]
        self.assertEqual((start, length, loop), (0.0, 3.5, False))
        self.assertEqual(self.transcoder.muxes[0][2], 0.5)

    def test_short_clip_loops(self):
        transcoder = FakeTranscoder(clip_seconds=2.0)
        pipeline = self.make_pipeline(transcoder=transcoder)
        pipeline.process_scene(Scene(id="s1", texts=["Goats faint."], visual_subject="goat"), 0)
        self.assertTrue(transcoder.trims[0][3])

    def test_mega_scene_yields_two_files_from_one_split(self):
        pipeline = self.make_pipeline()
        scene = Scene(id="s2", texts=["Line one.", "Line two."], type="context-mega", is_mega_scene=True,
                      visual_subject="goat")
        out = pipeline.process_scene(scene, 1)
        self.assertEqual(len(out), 2)
        self.assertNotEqual(out[0], out[1])
        starts = [t[1] for t in self.transcoder.trims]
        self.assertEqual(starts, [0.0, 3.5])

    def test_cached_scene_skips_transcoding(self):
        scene = Scene(id="s1", texts=["Goats faint."], visual_subject="goat")
        first = self.make_pipeline().process_scene(scene, 0)
        trims_before = len(self.transcoder.trims)
        second = self.make_pipeline().process_scene(scene, 0)
        self.assertEqual(first, second)
        self.assertEqual(len(self.transcoder.trims), trims_before)
        self.assertEqual(len(self.tts_calls), 1)

    def test_no_clip_raises_scene_error(self):
        pipeline = self.make_pipeline(clip_search=FakeClipSearch(missing={"goat"}))
        with self.assertRaises(sp.SceneError) as ctx:
            pipeline.process_scene(Scene(id="s1", texts=["Goats."], visual_subject="goat"), 2)
        self.assertIn("Scene 3", str(ctx.exception))

    def test_empty_narration_rejected(self):
        pipeline = self.make_pipeline(transcoder=FakeTranscoder(audio_seconds=0.0))
        with self.assertRaises(sp.ArtifactError):
            pipeline.process_scene(Scene(id="s1", texts=["Goats."], visual_subject="goat"), 0)


class TestRunScenes(PipelineTestCase):
    def test_results_in_script_order(self):
        scenes = [
            Scene(id="a", texts=["Hook line."], type="hook-summary", visual_subject="goat"),
            Scene(id="b", texts=["One.", "Two."], type="context-mega", is_mega_scene=True, visual_subject="cat"),
            Scene(id="c", texts=["Three."], visual_subject="dog"),
        ]
        pipeline = self.make_pipeline(clip_search=FakeClipSearch(delays={0: 0.2, 1: 0.1}))
        out = pipeline.run_scenes(scenes)
        self.assertEqual(len(out), 4)
        expected = [
            pipeline.ctx.mux_cache.path_for(text="Hook line.", voice="Joanna", provider="polly", clip="https://v/goat.mp4"),
            pipeline.ctx.mux_cache.path_for(text="One.", voice="Joanna", provider="polly", clip="https://v/cat.mp4", segment=0),
            pipeline.ctx.mux_cache.path_for(text="Two.", voice="Joanna", provider="polly", clip="https://v/cat.mp4", segment=1),
            pipeline.ctx.mux_cache.path_for(text="Three.", voice="Joanna", provider="polly", clip="https://v/dog.mp4"),
        ]
        self.assertEqual(out, expected)

    def test_failure_cancels_job(self):
        scenes = [
            Scene(id="a", texts=["Hook."], visual_subject="goat"),
            Scene(id="b", texts=["Missing."], visual_subject="unicorn"),
        ]
        pipeline = self.make_pipeline(clip_search=FakeClipSearch(missing={"unicorn"}))
        with self.assertRaises(sp.SceneError) as ctx:
            pipeline.run_scenes(scenes)
        self.assertEqual(ctx.exception.index, 1)
        self.assertTrue(pipeline.ctx.cancel_event.is_set())

    def test_unexpected_error_wrapped(self):
        class Broken(FakeClipSearch):
            def find_clip(self, subject, work_dir, scene_idx=0):
                raise OSError("disk full")
        pipeline = self.make_pipeline(clip_search=Broken())
        with self.assertRaises(sp.SceneError) as ctx:
            pipeline.run_scenes([Scene(id="a", texts=["Hook."], visual_subject="goat")])
        self.assertIn("disk full", str(ctx.exception))

    def test_empty(self):
        self.assertEqual(self.make_pipeline().run_scenes([]), [])


if __name__ == "__main__":
    unittest.main()
