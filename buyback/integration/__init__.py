"""Integration package: service loop and CLI runner.

IMPORTANT:
Run CLI entrypoints via module execution from the repository root, e.g.:
  python3 -m buyback.integration.runner --config configs/buyback.example.yaml --paper

This avoids Python import-path ambiguity when running files by relative path.
"""
