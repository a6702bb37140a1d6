"""
This package contains the core domain models of Free FPS.

The domain layer describes what a conversion *is*, independent of how the
external tools are driven:

Modules:
    exceptions.py: The error taxonomy. Every failure the engine can report
                   is an exception class carrying a stable numeric code.
    media.py: `SourceFile` and `ProbeResult`, plus the parsers that turn the
              transcoding tool's diagnostic text into structured facts.
    models.py: The derived per-file plans (timing, quality, encoder), the
               immutable batch options, job state and outcomes, and the
               progress events sent to the caller.
"""
