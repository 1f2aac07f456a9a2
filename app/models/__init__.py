from app.models.base import Base  # noqa: F401

from app.models.city import City  # noqa: F401
from app.models.area import Area  # noqa: F401
from app.models.sub_area import SubArea  # noqa: F401
from app.models.pincode import Pincode  # noqa: F401
from app.models.import_job import ImportJob  # noqa: F401
