"""Build order resolution for the images section."""

from typing import AbstractSet, Dict, Iterator, Optional, Sequence

from csm_connector.errors import CyclicDependencyError
from csm_connector.models.satfile import ExistingImage, ImageRef, ImageSpec


def resolution_key(spec: ImageSpec) -> str:
    """Key under which a built image is recorded: ref_name, else name."""
    return spec.key


def in_file_keys(specs: Sequence[ImageSpec]) -> Dict[str, str]:
    """Resolution key of every image of the file, by image name."""
    return {spec.name: resolution_key(spec) for spec in specs}


def dependency_key(spec: ImageSpec, keys_by_name: Dict[str, str]) -> Optional[str]:
    """Resolution key of the image of the file this spec is built from, if any.

    ``base.ims`` images named after another image of the file depend on it.
    """
    source = spec.source
    if isinstance(source, ImageRef):
        return source.ref_name
    if isinstance(source, ExistingImage) and source.name is not None and source.name != spec.name:
        return keys_by_name.get(source.name)
    return None


def next_ready(specs: Sequence[ImageSpec], processed_keys: AbstractSet[str]) -> Optional[ImageSpec]:
    """First unprocessed spec whose base dependency, if any, is already processed.

    Returns None when nothing is ready. That is the normal end of the build,
    unless unprocessed specs remain, which means a cycle or a dangling
    ``image_ref``.
    """
    keys_by_name = in_file_keys(specs)
    for spec in specs:
        if resolution_key(spec) in processed_keys:
            continue
        dependency = dependency_key(spec, keys_by_name)
        if dependency is None or dependency in processed_keys:
            return spec
    return None


def iter_build_order(specs: Sequence[ImageSpec], processed_keys: AbstractSet[str]) -> Iterator[ImageSpec]:
    """Yield specs in dependency order; the caller marks each one processed.

    Raises CyclicDependencyError once nothing is ready but specs remain.
    """
    while True:
        spec = next_ready(specs, processed_keys)
        if spec is None:
            break
        yield spec
        if resolution_key(spec) not in processed_keys:
            raise RuntimeError(f"Image '{spec.name}' was not recorded as processed")

    pending = [spec.name for spec in specs if resolution_key(spec) not in processed_keys]
    if pending:
        raise CyclicDependencyError(pending)
