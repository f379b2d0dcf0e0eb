"""
Connection properties of a tracked database.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum


class PropertyField(Enum):
    """Connection property editable one field at a time"""
    SERVER = "server"
    PORT = "port"
    DBNAME = "database_name"
    USERNAME = "user"
    PASSWORD = "password"


@dataclass
class ConnectionProperties:
    """
    Where and as whom to connect.

    Attributes:
        server: server name or address ("." means the local default instance)
        port: port number, kept as text the way it is entered
        database_name: database on that server
        user: login name
        password: login password, never written to the catalog
    """
    server: str = ""
    port: str = "1433"
    database_name: str = ""
    user: str = ""
    password: str = ""

    def set_value(self, field: PropertyField, value: str) -> None:
        setattr(self, field.value, value)

    def copy(self) -> 'ConnectionProperties':
        return replace(self)

    def to_dict(self, include_password: bool = False) -> dict:
        """Convert to a dictionary; the password is left out unless asked for"""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if not include_password:
            data.pop('password')
        return data

    def __repr__(self) -> str:
        return (
            f"ConnectionProperties(server={self.server!r}, port={self.port!r}, "
            f"database_name={self.database_name!r}, user={self.user!r}, password='***')"
        )
