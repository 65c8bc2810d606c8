from __future__ import annotations

from http.cookiejar import Cookie

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CookieRecord(BaseModel):
    """One persisted cookie.  Unique by ``(domain, path, name)``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    value: str
    domain: str
    path: str = "/"
    expires: int | None = None
    secure: bool = False
    http_only: bool = Field(default=False, alias="httpOnly")

    @field_validator("expires", mode="before")
    @classmethod
    def _whole_seconds(cls, value: object) -> object:
        if isinstance(value, float):
            return int(value)
        return value

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.domain, self.path, self.name)

    @classmethod
    def from_cookie(cls, cookie: Cookie) -> CookieRecord:
        return cls(
            name=cookie.name,
            value=cookie.value or "",
            domain=cookie.domain,
            path=cookie.path,
            expires=cookie.expires,
            secure=cookie.secure,
            # cookiejar keeps unknown attribute names in the case they were sent.
            http_only=any(key.lower() == "httponly" for key in cookie._rest),
        )

    def to_cookie(self) -> Cookie:
        """Build the ``http.cookiejar`` form used for request matching."""
        return Cookie(
            version=0,
            name=self.name,
            value=self.value,
            port=None,
            port_specified=False,
            domain=self.domain,
            domain_specified=self.domain.startswith("."),
            domain_initial_dot=self.domain.startswith("."),
            path=self.path,
            path_specified=True,
            secure=self.secure,
            expires=self.expires,
            discard=self.expires is None,
            comment=None,
            comment_url=None,
            rest={"HttpOnly": None} if self.http_only else {},
            rfc2109=False,
        )
