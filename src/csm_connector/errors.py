"""Exception hierarchy for connector failures."""

from typing import Any, Iterable, Optional


class CsmError(Exception):
    """Base class for every connector error."""
    pass


class NotFoundError(CsmError):
    """A configuration, image, recipe, key, group or session is missing."""
    pass


class ConfigurationNotFound(NotFoundError):
    """Configuration missing in the file and in the cluster."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"CFS configuration '{name}' not found")


class ImageNotFound(NotFoundError):
    """Image missing in the cluster."""

    def __init__(self, image: str):
        self.image = image
        super().__init__(f"Image '{image}' not found")


class RecipeNotFound(NotFoundError):
    """Recipe missing in the cluster."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"IMS recipe with name '{name}' - not found")


class KeyNotFound(NotFoundError):
    """Image build public key missing or not unique."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"IMS public key '{name}' not found")


class GroupNotFound(NotFoundError):
    """Group missing in the cluster."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"HSM group '{name}' not found")


class SessionNotFound(NotFoundError):
    """Session missing in the cluster."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"CFS session '{name}' not found")


class ConfigurationDerivativesNotFound(NotFoundError):
    """Nothing left to delete for the requested configurations."""

    def __init__(self, names: Iterable[str]):
        self.names = list(names)
        super().__init__(
            "Not enough information to proceed. Could not find information "
            f"related to CFS configurations '{', '.join(self.names)}'"
        )


class AlreadyExistsError(CsmError):
    """Name collision without overwrite."""
    pass


class ConfigurationAlreadyExists(AlreadyExistsError):
    """Configuration with the same name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"CFS configuration '{name}' already exists")


class AmbiguousError(CsmError):
    """A lookup matched zero or more than one entry."""
    pass


class UnauthorizedError(CsmError):
    """Group outside of the caller scope."""

    def __init__(self, message: str, group: Optional[str] = None, available: Iterable[str] = ()):
        self.group = group
        self.available = sorted(available)
        super().__init__(f"{message}, List of HSM groups available:\n{self.available}")


class InvalidReferenceError(CsmError):
    """Reference to something that does not exist or cannot be ordered."""
    pass


class DanglingReferenceError(InvalidReferenceError):
    """An image_ref points at no ref_name in the file."""
    pass


class CyclicDependencyError(InvalidReferenceError):
    """Images left unbuilt because their dependencies never resolve."""

    def __init__(self, pending: Iterable[str]):
        self.pending = list(pending)
        super().__init__(
            "Could not resolve build order for images: "
            f"{', '.join(self.pending)} (cyclic or dangling image_ref)"
        )


class UnsafeDeletionError(CsmError):
    """Deletion refused because an item is still in active use."""
    pass


class ConfigurationUsedError(UnsafeDeletionError):
    """Configuration or image used as runtime configuration or boot image."""

    def __init__(self, configurations: Iterable[str] = (), images: Iterable[str] = ()):
        self.configurations = list(configurations)
        self.images = list(images)
        super().__init__(
            "Configurations or images selected for deletion are used as runtime "
            "configuration or to boot nodes"
        )


class RemoteFailure(CsmError):
    """Transport or HTTP error from the cluster APIs."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class BuildFailure(CsmError):
    """A remote session or job did not reach success."""
    pass


class SatFileError(CsmError):
    """The SAT file is malformed or inconsistent."""
    pass
