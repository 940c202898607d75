"""Repository slug utilities.

Repository slugs are GitHub identifiers in ``owner/name`` format. They are not
filesystem paths, even though they use ``/`` as a separator, so they should be
parsed using these helpers rather than ``pathlib``.
"""

from __future__ import annotations

from azgitconnect.errors import InvalidRepositorySlugError


def repo_slug(owner: str, name: str) -> str:
    """Build a repository slug from owner and name.

    Examples
    --------
    >>> repo_slug("octo", "reef")
    'octo/reef'

    """
    return f"{owner}/{name}"


def parse_repo_slug(slug: str) -> tuple[str, str]:
    """Parse a repository slug into owner and name.

    Parameters
    ----------
    slug:
        Repository slug in ``owner/name`` format. Surrounding whitespace is
        ignored.

    Returns
    -------
    tuple[str, str]
        ``(owner, name)``.

    Raises
    ------
    InvalidRepositorySlugError
        If the slug is not in ``owner/name`` format.

    Examples
    --------
    >>> parse_repo_slug("octo/reef")
    ('octo', 'reef')

    """
    text = slug.strip()
    if text.count("/") != 1:
        raise InvalidRepositorySlugError.malformed(slug)

    owner, name = text.split("/")
    if not owner or not name:
        raise InvalidRepositorySlugError.malformed(slug)

    return owner, name


def default_app_name(slug: str) -> str:
    """Derive the Entra application display name for a repository.

    Examples
    --------
    >>> default_app_name("octo/reef")
    'gh-octo-reef'

    """
    owner, name = parse_repo_slug(slug)
    return f"gh-{owner}-{name}"
