"""
Enrichment pipeline building blocks.

Provides:
- Completer / Searcher / Translator: interchangeable external backends
- Research: website crawler and web search bundles
- Discovery: Overpass import of candidate businesses
- EnrichmentEngine: prompt, completion and reply parsing
- Translation fan-out
"""
