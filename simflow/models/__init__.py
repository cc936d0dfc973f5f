# Importing this package registers every mapped table on Base.metadata.
from simflow.models.project import Project, ProjectStatusHistory  # noqa: F401
from simflow.models.hour_transaction import ProjectHourTransaction  # noqa: F401
from simflow.models.sim_request import RequestActivity, SimRequest  # noqa: F401
from simflow.models.discussion_request import DiscussionRequest  # noqa: F401
