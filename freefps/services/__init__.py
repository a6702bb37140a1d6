"""
Services Package for Free FPS.

This package contains the "service layer" of the application. Each module
performs one step of converting a file, and the pipeline combines them:

- **Media Prober (`probe_service`):** inspects a source file for its frame
  rate, duration, creation time and size.
- **Timing Calculator (`timing_service`):** derives the timestamp scale and
  the audio tempo chain from the source and target frame rates.
- **Quality Planner (`quality_service`):** chooses constant quality or a
  target bitrate for each file.
- **Encoder Selector (`encoder_selector`):** finds a working hardware
  encoder, or falls back to libx264.
- **Job Executor (`job_executor`):** builds and runs the ffmpeg command for
  one file, reporting progress and honouring cancellation.
- **File Processing Service (`file_processing_service`):** discovers input
  files, validates explicit selections and names the outputs.
- **Thumbnail Service (`thumbnail_service`):** extracts JPEG previews.
- **Logging Service (`logging_service`):** loguru sinks, the failed-command
  log and the YAML conversion report.
"""
