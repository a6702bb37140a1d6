"""
Free FPS: retime video files to a new frame rate without dropping or
duplicating frames.

The package is laid out in layers:

- ``config``: static defaults and the optional ``config.user.yaml`` overrides.
- ``domain``: value objects (source files, probe results, plans, outcomes)
  and the error taxonomy.
- ``services``: the individual engine components (prober, timing calculator,
  quality planner, encoder selector, job executor, file discovery, logging).
- ``pipeline``: the batch orchestrator that drives the services over a folder.
- ``utils``: helpers for running external tools and formatting values.
"""

__version__ = "1.0.0"
