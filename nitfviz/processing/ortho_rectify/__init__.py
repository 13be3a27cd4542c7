
__classification__ = "UNCLASSIFIED"

from .projection_helper import ProjectionError, PGProjection
from .base import NearestNeighborMethod, project
