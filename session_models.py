"""
Defines the high-level data structures for managing a connected client.

This module contains the Pydantic model that bundles together everything the
socket layer needs to serve one client: the wizard engine that owns the
client's session, and the identifiers used to address it.
"""
from pydantic import BaseModel, ConfigDict

from wizard import WizardEngine


class ActiveSession(BaseModel):
    """
    Represents a live client connection with its wizard engine.

    This model acts as a "context object" that the event handlers look up by
    socket id and pass into the engine operations.
    """

    # This config allows the model to hold the WizardEngine, which is not a
    # pydantic type, without validation errors.
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # The engine holding this client's session, undo history and registry.
    engine: WizardEngine
    # The Socket.IO session id of the client.
    client_id: str

    @property
    def name(self) -> str:
        return self.engine.session.target_name
