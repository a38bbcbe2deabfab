from .jobs import (
    HostDeployRequest,
    HostDeployResponse,
    Job,
    JobDetail,
    JobPage,
    JobStreamEvent,
)

__all__ = [
    "HostDeployRequest",
    "HostDeployResponse",
    "Job",
    "JobDetail",
    "JobPage",
    "JobStreamEvent",
]
