"""BSS record models."""

import re
from typing import List, Optional
from pydantic import BaseModel, Field


_BOOT_IMAGE_RE = re.compile(r"s3://boot-images/([^/\s]+)/")


class BootParameters(BaseModel):
    """Boot parameters of a set of hosts."""
    hosts: List[str] = Field(default_factory=list)
    macs: Optional[List[str]] = None
    nids: Optional[List[int]] = None
    params: str = Field(default="")
    kernel: Optional[str] = None
    initrd: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "ignore"

    def boot_image(self) -> Optional[str]:
        """Image id the hosts boot, read from the root filesystem or the kernel path."""
        for token in self.params.split():
            if token.startswith(("root=", "metal.server=")):
                match = _BOOT_IMAGE_RE.search(token)
                if match:
                    return match.group(1)
        if self.kernel:
            match = _BOOT_IMAGE_RE.search(self.kernel)
            if match:
                return match.group(1)
        return None
