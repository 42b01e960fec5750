"""
Video job controller and command-line entry point.

run_video_job turns one script into a finished vertical video:
segment -> per-scene clip/narration/mux (parallel) -> assemble -> upload,
reporting progress to a JobStore. The job runs on a worker thread under a wall-clock
watchdog; any failure ends in a terminal progress record and the job directory is removed.
"""

import argparse
import json
import shutil
import sys
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

import config
import storage
from clip_search import ClipSearch
from job_store import InMemoryJobStore, JobProgress, JobStore
from media_assembler import AssemblyOptions, MediaAssembler
from media_library import MediaLibrary
from scene_pipeline import AudioCache, MuxCache, PipelineContext, ScenePipeline
from script_segmenter import segment_script
from transcoder import FFmpegTranscoder, Transcoder
from tts import TTS_PROVIDERS

STATUS_READY = "Your video is ready!"
STATUS_READY_LOCAL = "Video ready locally (upload failed)."
STATUS_FAILED = "Something went wrong. Please try again or contact support."


class JobTimeoutError(RuntimeError):
    """The job ran past its wall-clock timeout."""


class JobCancelled(RuntimeError):
    pass


@dataclass
class JobRequest:
    script: str
    voice: str
    provider: str = config.DEFAULT_TTS_PROVIDER
    topic: str = ""


def validate_request(request: JobRequest) -> None:
    if not request.script or not request.script.strip():
        raise ValueError("Missing script")
    if not request.voice or not request.voice.strip():
        raise ValueError("Missing voice")
    if (request.provider or "").lower() not in TTS_PROVIDERS:
        raise ValueError(f"Unknown TTS provider: {request.provider}")


class VideoJob:
    """One job's collaborators and state. Built by run_video_job; tests inject fakes."""

    def __init__(self, job_id: str, request: JobRequest, store: JobStore, cfg: config.Config | None = None,
                 transcoder: Transcoder | None = None, clip_search: ClipSearch | None = None,
                 library: MediaLibrary | None = None, uploader=None,
                 audio_cache: AudioCache | None = None, mux_cache: MuxCache | None = None):
        self.job_id = job_id
        self.request = request
        self.store = store
        self.cfg = cfg or config.Config()
        self.work_dir = config.JOBS_DIR / job_id
        self.transcoder = transcoder or FFmpegTranscoder()
        self.library = library if library is not None else MediaLibrary()
        self.clip_search = clip_search or ClipSearch(library=self.library, transcoder=self.transcoder, job_id=job_id)
        self.uploader = uploader or storage.upload
        self.audio_cache = audio_cache or AudioCache()
        self.mux_cache = mux_cache or MuxCache()
        self.cancel_event = threading.Event()

    def progress(self, percent: int, status: str, output: str | None = None) -> None:
        """Progress writes stop once the watchdog has cancelled the job."""
        if self.cancel_event.is_set():
            raise JobCancelled(f"Job {self.job_id} cancelled")
        self.store.update(self.job_id, percent, status, output=output)

    def execute(self) -> Path:
        """Run the whole pipeline and return the final local video file."""
        validate_request(self.request)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.progress(2, "Setting up your project...")

        scenes = segment_script(self.request.script, self.request.topic)
        if not scenes:
            raise ValueError("No scenes parsed from script")
        print(f"[JOB][{self.job_id}] {len(scenes)} scenes, voice={self.request.voice} provider={self.request.provider}")

        self.progress(10, "Processing all scenes in parallel...")
        pipeline = ScenePipeline(PipelineContext(
            job_id=self.job_id,
            work_dir=self.work_dir,
            voice=self.request.voice,
            provider=self.request.provider.lower(),
            clip_search=self.clip_search,
            transcoder=self.transcoder,
            audio_cache=self.audio_cache,
            mux_cache=self.mux_cache,
            lead_in=self.cfg.lead_in,
            trail_out=self.cfg.trail_out,
            cancel_event=self.cancel_event,
        ))
        scene_files = pipeline.run_scenes(scenes)

        self.progress(40, "Stitching your video together...")
        assembler = MediaAssembler(self.transcoder, self.work_dir, self.job_id, progress=self.progress)
        final = assembler.assemble(scene_files, self.request.script, AssemblyOptions(
            music_enabled=self.cfg.music_enabled,
            outro_enabled=self.cfg.outro_enabled,
            outro_path=self.cfg.outro_path,
        ))

        # The job directory is removed at cleanup; keep the deliverable outside it
        config.FINAL_DIR.mkdir(parents=True, exist_ok=True)
        kept = config.FINAL_DIR / f"{self.job_id}-{final.name}"
        shutil.copy2(final, kept)
        return kept

    def upload(self, final: Path) -> None:
        self.progress(98, "Uploading your video...")
        try:
            url = self.uploader(final, f"{self.job_id}-{final.name}")
        except (S3UploadFailedError, ClientError, BotoCoreError, ValueError, OSError) as e:
            print(f"[UPLOAD][{self.job_id}] Upload failed, serving local file: {e}")
            self.progress(100, STATUS_READY_LOCAL, output=str(final))
            return
        self.progress(100, STATUS_READY, output=url)

    def remove_work_dir(self) -> None:
        if self.cfg.keep_workdir:
            print(f"[JOB][{self.job_id}] Keeping work dir {self.work_dir}")
        else:
            shutil.rmtree(self.work_dir, ignore_errors=True)

    def cleanup(self) -> None:
        self.remove_work_dir()
        self.store.schedule_delete(self.job_id)


def run_video_job(job_id: str, request: JobRequest, store: JobStore, timeout: float | None = None,
                  **job_kwargs) -> JobProgress:
    """
    Run a job to its terminal state and return the final progress record.
    Never raises: errors become a failure record carrying the error message.
    """
    job = VideoJob(job_id, request, store, **job_kwargs)
    timeout = job.cfg.job_timeout if timeout is None else timeout
    store.update(job_id, 0, "Starting up...")
    outcome: dict = {}

    def _worker():
        try:
            final = job.execute()
            job.upload(final)
            job.library.archive_in_background(job.clip_search.downloaded)
        except JobCancelled:
            pass
        except Exception as e:
            outcome["error"] = e
        finally:
            # Outputs written after a timeout can recreate the job directory
            if job.cancel_event.is_set():
                job.remove_work_dir()

    worker = threading.Thread(target=_worker, name=f"job-{job_id}", daemon=True)
    worker.start()
    worker.join(timeout)
    try:
        if worker.is_alive():
            job.cancel_event.set()
            error = JobTimeoutError(f"Job exceeded {timeout:.0f}s and was stopped")
            print(f"[JOB][{job_id}] {error}")
            store.update(job_id, 100, STATUS_FAILED, error=str(error))
            worker.join(config.JOB_CANCEL_GRACE)
        elif "error" in outcome:
            print(f"[JOB][{job_id}] Video job failed: {outcome['error']}")
            store.update(job_id, 100, STATUS_FAILED, error=str(outcome["error"]))
    finally:
        job.cleanup()
    return store.get(job_id)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Build a vertical narrated video from a script text file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One line per scene, Polly narration
  python build_video.py script.txt --voice Joanna

  # OpenAI narration, explicit topic, no music or outro
  python build_video.py script.txt --voice alloy --provider openai --topic "trevi fountain" --no-music --no-outro
        """
    )
    parser.add_argument("script_file", help="Path to the script text file (one line per scene)")
    parser.add_argument("--voice", required=True, help="TTS voice id (e.g. Joanna for Polly, alloy for OpenAI)")
    parser.add_argument("--provider", default=config.DEFAULT_TTS_PROVIDER, choices=TTS_PROVIDERS,
                        help=f"TTS provider (default: {config.DEFAULT_TTS_PROVIDER})")
    parser.add_argument("--topic", default="", help="Main topic; guessed from the script when omitted")
    parser.add_argument("--no-music", action="store_true", help="Skip background music")
    parser.add_argument("--no-outro", action="store_true", help="Skip the outro clip")
    parser.add_argument("--job-id", default=None, help="Job id (default: random uuid)")
    parser.add_argument("--keep-workdir", action="store_true", help="Keep jobs/<id>/ after the job (debugging)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    script_path = Path(args.script_file)
    if not script_path.exists():
        print(f"ERROR: Script file not found: {script_path}")
        return 1

    cfg = config.Config()
    cfg.music_enabled = not args.no_music
    cfg.outro_enabled = not args.no_outro
    cfg.keep_workdir = args.keep_workdir

    job_id = args.job_id or str(uuid.uuid4())
    request = JobRequest(
        script=script_path.read_text(encoding="utf-8"),
        voice=args.voice,
        provider=args.provider,
        topic=args.topic,
    )
    print(f"\n{'='*60}")
    print(f"[JOB] {job_id}: {script_path.name}")
    print(f"{'='*60}")
    record = run_video_job(job_id, request, InMemoryJobStore(), cfg=cfg)
    print(json.dumps(record.to_dict() if record else {}, indent=2))
    return 0 if record and not record.error else 1


if __name__ == "__main__":
    sys.exit(main())
