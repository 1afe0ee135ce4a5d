from __future__ import annotations
import ulid
def new_job_id() -> str: return str(ulid.new())
