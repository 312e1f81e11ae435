"""
Memoria: review-scheduling core for a spaced-repetition flashcard app.

Components:
- scheduling: SM-2 variant engine, session queue, Study/Practice modes, reset
- override: AI due-date overrides from graded tests
- db: SQLAlchemy persistence of cards, settings and the review log
- stats: streak / retention statistics
- cli: the 'memoria' terminal interface
"""

__version__ = "1.0.0"
