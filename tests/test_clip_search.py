"""
Unit tests for clip_search.py: tier order, used-clip registry and the photo fallback.
Providers and the library are in-memory fakes; Ken Burns rendering is mocked.
"""

import tempfile
import threading
import unittest
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

import requests

from clip_scoring import ClipCandidate
from clip_search import ClipSearch, UsedClips
from entity_resolver import EntityResolver
from stock_providers import StockProvider


class FakeProvider(StockProvider):
    def __init__(self, name="pexels", videos=(), photos=(), fail_search=False):
        self.name = name
        self.videos = list(videos)
        self.photos = list(photos)
        self.fail_search = fail_search
        self.queries = []

    @property
    def enabled(self) -> bool:
        return True

    def search_videos(self, query):
        self.queries.append(query)
        if self.fail_search:
            raise requests.ConnectionError("offline")
        return [ClipCandidate(source=self.name, ref=ref, text=text, file_type="video/mp4") for ref, text in self.videos]

    def search_photos(self, query):
        return [ClipCandidate(source=self.name, ref=ref, text=text, kind="photo") for ref, text in self.photos]

    def download(self, candidate, out_path):
        out_path.write_bytes(b"x" * 4096)
        return out_path


class FakeLibrary:
    def __init__(self, keys=(), enabled=True, fail_download=False):
        self.keys = list(keys)
        self.enabled = enabled
        self.fail_download = fail_download

    def find_candidates(self, subject, used=()):
        words = subject.lower().split()
        return [ClipCandidate(source="library", ref=k, text=k) for k in self.keys
                if all(w in k for w in words) and k not in used]

    def find_any(self, used=()):
        return [ClipCandidate(source="library", ref=k, text=k) for k in self.keys if k not in used]

    def download(self, candidate, work_dir):
        if self.fail_download:
            return None
        path = Path(work_dir) / Path(candidate.ref).name
        path.write_bytes(b"x" * 4096)
        return path


def _search(providers=(), library=None, transcoder=None):
    return ClipSearch(providers=list(providers), library=library or FakeLibrary(enabled=False),
                      transcoder=transcoder, resolver=EntityResolver(), job_id="job1")


class TestUsedClips(unittest.TestCase):
    def test_claim_once(self):
        used = UsedClips()
        self.assertTrue(used.claim("https://cdn/x/goat.mp4"))
        self.assertFalse(used.claim("https://cdn/x/goat.mp4"))
        self.assertFalse(used.claim("library/goat.mp4"))
        self.assertIn("goat.mp4", used)
        self.assertEqual(len(used), 1)

    def test_release(self):
        used = UsedClips(["a/goat.mp4"])
        used.release("a/goat.mp4")
        self.assertNotIn("goat.mp4", used)
        self.assertTrue(used.claim("a/goat.mp4"))

    def test_empty_ref_not_claimed(self):
        self.assertFalse(UsedClips().claim(""))

    def test_concurrent_claims_single_winner(self):
        used = UsedClips()
        wins = []
        lock = threading.Lock()

        def worker():
            if used.claim("shared/clip.mp4"):
                with lock:
                    wins.append(1)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(wins), 1)


class TestInjection(unittest.TestCase):
    def test_empty_registry_is_kept(self):
        shared = UsedClips()
        search = ClipSearch(providers=[], library=FakeLibrary(enabled=False), used=shared)
        self.assertIs(search.used, shared)

    def test_empty_resolver_is_kept(self):
        resolver = EntityResolver()
        search = ClipSearch(providers=[], library=FakeLibrary(enabled=False), resolver=resolver)
        self.assertIs(search.resolver, resolver)

    def test_shared_registry_excludes_across_searches(self):
        shared = UsedClips()
        provider = FakeProvider(videos=[("https://v/goat1.mp4", "goat")])
        with tempfile.TemporaryDirectory() as tmp:
            first = ClipSearch(providers=[provider], library=FakeLibrary(enabled=False), used=shared)
            second = ClipSearch(providers=[provider], library=FakeLibrary(enabled=False), used=shared)
            self.assertIsNotNone(first.find_clip("goat", tmp))
            self.assertIsNone(second.find_clip("goat", tmp))
        self.assertIn("https://v/goat1.mp4", shared)


class TestSearchTerms(unittest.TestCase):
    def test_stages_capped_and_non_empty(self):
        search = _search()
        stages = search.search_terms("goat")
        self.assertTrue(stages)
        self.assertEqual(stages[0][0], "goat")
        for terms in stages:
            self.assertTrue(0 < len(terms) <= 4)


class TestFindClip(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.work = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_library_first(self):
        provider = FakeProvider(videos=[("https://v/goat1.mp4", "goat")])
        search = _search([provider], library=FakeLibrary(["animals/goat_grazing.mp4"]))
        result = search.find_clip("goat", self.work, scene_idx=1)
        self.assertEqual(result.source, "library")
        self.assertEqual(provider.queries, [])
        self.assertIn("animals/goat_grazing.mp4", search.used)

    def test_library_download_failure_releases_claim(self):
        provider = FakeProvider(videos=[("https://v/goat1.mp4", "goat")])
        search = _search([provider], library=FakeLibrary(["animals/goat.mp4"], fail_download=True))
        result = search.find_clip("goat", self.work)
        self.assertEqual(result.source, "pexels")
        self.assertNotIn("animals/goat.mp4", search.used)

    def test_provider_download_failure_releases_claim(self):
        provider = FakeProvider(videos=[("https://v/goat1.mp4", "goat")])
        provider.download = MagicMock(side_effect=requests.ConnectionError("reset"))
        search = _search([provider])
        self.assertIsNone(search.find_clip("goat", self.work))
        self.assertNotIn("https://v/goat1.mp4", search.used)

    def test_provider_result_recorded_for_archive(self):
        search = _search([FakeProvider(videos=[("https://v/goat1.mp4", "goat")])])
        result = search.find_clip("goat", self.work, scene_idx=2)
        self.assertEqual(result.source, "pexels")
        self.assertTrue(result.path.exists())
        self.assertTrue(result.path.name.startswith("scene2-pexels-goat-"))
        self.assertEqual(search.downloaded, [(result.path, "goat", 2, "pexels")])

    def test_used_clips_never_returned_twice(self):
        provider = FakeProvider(videos=[("https://v/goat1.mp4", "goat"), ("https://v/goat2.mp4", "goat")])
        search = _search([provider])
        first = search.find_clip("goat", self.work, 0)
        second = search.find_clip("goat", self.work, 1)
        self.assertNotEqual(first.ref, second.ref)
        self.assertIsNone(search.find_clip("goat", self.work, 2))

    def test_search_error_moves_to_next_provider(self):
        broken = FakeProvider(name="pexels", fail_search=True)
        working = FakeProvider(name="pixabay", videos=[("https://p/goat.mp4", "goat")])
        result = _search([broken, working]).find_clip("goat", self.work)
        self.assertEqual(result.source, "pixabay")

    @patch("clip_search.kenburns.make_ken_burns_clip")
    def test_zero_video_results_fall_back_to_ken_burns(self, mock_kb):
        mock_kb.side_effect = lambda image, out, transcoder: out
        provider = FakeProvider(photos=[("https://p/goat.jpg", "goat")])
        result = _search([provider], transcoder=MagicMock()).find_clip("goat", self.work)
        self.assertIsNotNone(result)
        self.assertEqual(result.source, "kenburns")
        self.assertEqual(result.kind, "photo")
        image_arg = mock_kb.call_args[0][0]
        self.assertEqual(image_arg.suffix, ".jpg")

    def test_any_library_clip_before_generic(self):
        search = _search([FakeProvider()], library=FakeLibrary(["misc/fountain.mp4"]))
        result = search.find_clip("orangutan", self.work)
        self.assertEqual(result.ref, "misc/fountain.mp4")

    def test_generic_subject_searched_as_landmark(self):
        provider = FakeProvider(videos=[("https://v/landmark.mp4", "landmark")])
        result = _search([provider]).find_clip("person", self.work)
        self.assertEqual(result.subject, "landmark")
        self.assertEqual(provider.queries[0], "landmark")

    def test_nothing_anywhere(self):
        self.assertIsNone(_search([FakeProvider()]).find_clip("goat", self.work))


if __name__ == "__main__":
    unittest.main()
