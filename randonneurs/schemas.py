from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field

class EventCreate(BaseModel):
    name: str
    chapter_id: Optional[int] = None
    route_id: Optional[int] = None
    event_type: str = "brevet"  # brevet | populaire | fleche | permanent
    distance_km: Optional[int] = None
    event_date: str = ""  # YYYY-MM-DD
    start_time: Optional[str] = None  # HH:MM
    start_location: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    collection: Optional[str] = None

class RouteCreate(BaseModel):
    name: str
    slug: Optional[str] = None
    chapter_id: Optional[int] = None
    distance_km: Optional[int] = None
    collection: Optional[str] = None
    description: Optional[str] = None
    rwgps_id: Optional[str] = None  # id or full RWGPS url
    cue_sheet_url: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True

class RiderCreate(BaseModel):
    first_name: str
    last_name: str
    email: Optional[str] = None
    gender: Optional[str] = None

class RiderMergeData(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None

class RegistrationData(BaseModel):
    event_id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    gender: Optional[str] = None
    share_registration: bool = True
    notes: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None

class PermanentRegistrationData(RegistrationData):
    route_id: Optional[int] = None
    ride_date: str = ""  # YYYY-MM-DD
    start_time: str = "08:00"
    start_location: Optional[str] = None
    direction: str = "as_posted"  # as_posted | reversed

class ResultCreate(BaseModel):
    event_id: int
    rider_id: int
    status: str = "finished"  # pending | finished | dnf | dns | otl | dq
    finish_time: Optional[str] = None
    team_name: Optional[str] = None
    note: Optional[str] = None

class ResultUpdate(BaseModel):
    status: Optional[str] = None
    finish_time: Optional[str] = None
    team_name: Optional[str] = None
    note: Optional[str] = None

class NewsCreate(BaseModel):
    title: str
    teaser: Optional[str] = None
    body: str
    is_published: bool = False

class AdminUserCreate(BaseModel):
    email: str
    name: str
    password: str
    role: str = Field(default="admin")  # super_admin | admin | chapter_admin
    chapter_id: Optional[int] = None
    phone: Optional[str] = None
