"""
Exceptions raised by the CORFO form agent
"""

from datetime import datetime


class GrantAgentError(Exception):
    """Base error for the form agent"""
    def __init__(self, message="Form agent error"):
        self.message = message
        self.timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        super().__init__(self.message)


class LoginError(GrantAgentError):
    """Raised when no login interface is found or authentication fails. Always fatal."""
    def __init__(self, message="No se encontró interfaz de login"):
        super().__init__(message)


class ExecutionCancelled(GrantAgentError):
    """Raised at a loop boundary once stop() has been requested"""
    def __init__(self, message="Ejecución cancelada"):
        super().__init__(message)
