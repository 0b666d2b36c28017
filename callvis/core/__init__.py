"""Pipeline orchestration, option storage, artifact caching and the control service."""
