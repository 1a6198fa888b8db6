# Realtime core
from app.services.connection_registry import ConnectionRegistry, Connection
from app.services.events import DomainEvent, EventType, TargetSelector, Actor
from app.services.fanout import EventFanout, DeliveryReport
from app.services.rooms import RoomTopology, topology
