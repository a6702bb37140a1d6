"""
Configuration Package for Free FPS.

This package centralizes the static configuration of the application: file
extensions, encoder profiles, default conversion settings and the logging
format. Values found in the optional ``config.user.yaml`` file override the
built-in defaults when the package is first imported.

Nothing in here is mutated at run time. A conversion batch receives its
settings as an immutable ``ConversionOptions`` value built by the caller.
"""
