"""
Tabletop Codex -- cross-reference linking engine (pure Python, no Qt).

Package layout:
    models        Entity records, snapshots, reference nodes, navigation types
    sources       Entity sources (campaign REST API, export files)
    entity_index  Snapshot builder and live holder
    ranker        Query ranking
    trigger       ``[[`` detection state machine
    suggestions   Suggestion session controller
    markup        Reference node serialization
    document      Document engine contract and in-memory document
    navigation    Reference click -> route mapping
    settings      User settings
"""
