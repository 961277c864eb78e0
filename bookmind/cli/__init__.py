"""Command-line tools for bookmind.

``python -m bookmind.cli <command>``:

- ``extract <document-id>`` runs a content extraction inline (no queue)
- ``index <document-id>`` rebuilds the chunk index of an extracted document
- ``ask <document-id> "<question>"`` asks a question (``--stream`` prints
  tokens as they arrive)
- ``job <job-id>`` prints the state of an extraction job

Heavy imports are deferred into the command handlers so ``--help`` stays
fast.
"""
