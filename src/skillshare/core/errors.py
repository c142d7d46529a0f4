"""Exception taxonomy shared by the engines and both transports."""


class SkillshareError(Exception):
    """Base error. ``status_code`` is the HTTP status the API maps it to."""

    status_code = 500


class NotFoundError(SkillshareError):
    """Unknown skill, target, backup or trash entry."""

    status_code = 404


class ConflictError(SkillshareError):
    """Local state blocks a destructive operation without force."""

    status_code = 409


class AuditBlockedError(SkillshareError):
    """Security audit found issues at or above the block threshold."""

    status_code = 400


class IOFailureError(SkillshareError):
    """Filesystem, git or network failure."""

    status_code = 500


class InvalidInputError(SkillshareError):
    """Malformed request."""

    status_code = 400
