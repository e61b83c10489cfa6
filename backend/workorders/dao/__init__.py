"""Data Access Objects package"""

from workorders.dao.base import BaseDAO
from workorders.dao.user import UserDAO
from workorders.dao.building import BuildingDAO
from workorders.dao.ticket import TicketDAO, TicketCommentDAO, TicketAttachmentDAO
from workorders.dao.sms_log import SmsLogDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "BuildingDAO",
    "TicketDAO",
    "TicketCommentDAO",
    "TicketAttachmentDAO",
    "SmsLogDAO",
]
