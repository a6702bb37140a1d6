"""
Utilities Package for Free FPS.

Helpers that are not specific to a single engine component:

    - ffmpeg_utils.py: Locating the ffmpeg/ffprobe binaries, running short
      tool invocations, rendering commands for logs and lowering the
      scheduling priority of a spawned transcoder.
    - format_utils.py: Human-readable sizes and durations, frame-rate labels
      and extension matching.
    - time_utils.py: ISO-8601 conversions and restoring filesystem timestamps
      on converted files.
"""
