"""newsmerge – financial news ingestion from GNews, NewsAPI and Google News RSS.

Normalises provider payloads into ``Article`` records, collapses duplicates
by URL, persists them with a merge-on-upsert SQLite store and serves
search / holdings / ranked-feed reads.
"""
