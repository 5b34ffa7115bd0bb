"""
Site search engine

Crawls configured websites, indexes page text by lemma and answers ranked
multi-word queries.
"""

__version__ = "1.0.0"
__description__ = "Crawler, lemma index and ranked search for a fixed set of websites"
