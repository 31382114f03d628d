"""
PropIntel Learning — Adaptive regional-learning subsystem.

Turns repeated property analyses into progressively better defaults
(comparable selection criteria, feature weights, prompt templates,
price-range forecasts) without an external ML framework.

Architecture:
    propintel/
    ├── storage/         # Keyed stores (JSON file, in-memory)
    ├── schemas/         # Inbound report models shared by all components
    ├── feedback/        # User ratings, corrections, outcome verification
    ├── predictions/     # Forecast snapshots and validation against actuals
    ├── prompts/         # Prompt template performance, rewrites, A/B tests
    ├── location/        # Address components, relationships, clusters
    ├── deepening/       # Re-analysis ladder per property identity
    ├── regional/        # Per-region market knowledge and predictions
    ├── comparables/     # Learned comparable selection per region/type
    └── learning/        # Orchestrator, quality rubric, learning report

Data Flow:
    Report → Orchestrator → Regional / Predictions / Location / Deepening
    → Comparables → Learned defaults → next analysis

Version: 1.0.0
"""

__version__ = "1.0.0"
