"""Database models for the Data Machine backend."""

from .auth import ApiToken, AppSetting
from .credential import OAuthCredential, OAuthState
from .flow import Flow, FlowStep
from .job import Job
from .logs import RunLog
from .pipeline import Pipeline, PipelineStep
from .post import Post
from .processed_item import ProcessedItem

__all__ = [
    "ApiToken",
    "AppSetting",
    "Pipeline",
    "PipelineStep",
    "Flow",
    "FlowStep",
    "Job",
    "ProcessedItem",
    "OAuthCredential",
    "OAuthState",
    "Post",
    "RunLog",
]
