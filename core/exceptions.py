"""
Custom exception classes

All business-rule failures live here so the API layer can map them to HTTP
responses in one place.
"""


class AthleticsMeetException(Exception):
    """Base class for every athletics meet exception"""
    pass


# ============ Registration ============

class ValidationError(AthleticsMeetException):
    """Malformed or missing registration / team fields"""
    pass


class DuplicateRegistration(AthleticsMeetException):
    """Registration code already belongs to another participant"""
    def __init__(self, registration_code, participant_id=None, chest_number=None):
        self.registration_code = registration_code
        self.participant_id = participant_id
        self.chest_number = chest_number
        super().__init__(
            f"Participant with registration code {registration_code} already exists "
            f"(id={participant_id}, chest number={chest_number})"
        )


class ResourceContention(AthleticsMeetException):
    """Chest number allocation kept conflicting with concurrent allocators"""
    pass


# ============ Round engine ============

class InvalidParticipant(AthleticsMeetException):
    """Roster id is unknown or not eligible for the round"""
    pass


class InvalidState(AthleticsMeetException):
    """Operation is illegal in the current round / event lifecycle state"""
    pass


# ============ Storage ============

class PersistenceError(AthleticsMeetException):
    """Storage call failed or timed out"""
    pass


# ============ Lookups ============

class EventNotFound(AthleticsMeetException):
    """Event does not exist"""
    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class ParticipantNotFound(AthleticsMeetException):
    """Participant does not exist"""
    def __init__(self, participant_id):
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} not found")


class TeamNotFound(AthleticsMeetException):
    """Team does not exist"""
    def __init__(self, team_id):
        self.team_id = team_id
        super().__init__(f"Team {team_id} not found")


class DepartmentNotFound(AthleticsMeetException):
    """Department does not exist"""
    def __init__(self, department_id):
        self.department_id = department_id
        super().__init__(f"Department {department_id} not found")


class RequestNotFound(AthleticsMeetException):
    """Participation request does not exist"""
    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Request {request_id} not found")
