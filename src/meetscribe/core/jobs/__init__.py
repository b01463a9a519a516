from meetscribe.core.jobs.layout import JobLayout
from meetscribe.core.jobs.spec_store import JobSpecStore

__all__ = ["JobLayout", "JobSpecStore"]
