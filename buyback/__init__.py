"""Revenue-funded buyback execution engine.

Run the CLI via module execution from the repository root, e.g.:
  python3 -m buyback.integration.runner --config configs/buyback.example.yaml --paper
"""

__version__ = "0.3.0"
