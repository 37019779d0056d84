"""CivicQuery: a chat assistant for municipal open data.

Questions in plain English are matched to a catalog table by embedding
similarity, turned into SQLite queries by an LLM, and answered with a
formatted result table. Stored answers can be turned into charts.

Package Structure:
    core/       - Core infrastructure (config, db, models, exceptions)
    catalog/    - Table descriptors loaded from YAML
    retrieval/  - Embedding client and semantic table index
    llm/        - LLM interaction (client, prompts, SQL analysis, chart selection)
    security/   - SQL guardrails and sanitizing
    query/      - Query execution and result formatting
    viz/        - Chart rendering and publishing
    storage/    - Query log
"""
