"""LearnSync API - progress sync and deviation analytics."""
