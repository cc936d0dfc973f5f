from simflow.schemas.projects import ProjectCreateRequest, ProjectResponse, HourTransactionResponse
from simflow.schemas.requests import RequestCreateRequest, SimRequestResponse, DiscussionResponse
