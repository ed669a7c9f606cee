# ABOUTME: Collaborators the pipeline calls out to: fetchers, language model extraction, embeddings
# ABOUTME: Protocols live in base; concrete implementations in web and analysis

"""
Extraction Layer: Get structured facts out of web pages

This layer handles:
- Fetching source and article pages as markdown
- Language model extraction of headlines, article content and quotes
- Quote validation and embeddings for deduplication

Data Flow: Source pages → markdown → structured extraction → pipeline stages
"""
