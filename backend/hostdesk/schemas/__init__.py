"""Pydantic schemas for the HostDesk API."""

from hostdesk.schemas.booking import *
from hostdesk.schemas.cleaning import *
from hostdesk.schemas.email import *
