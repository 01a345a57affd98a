# -*- coding: utf-8 -*-

# Precast Session
# Copyright (C) 2025 Precast Session contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Request header construction.

The backend accepts the same credential in several conventions depending on
the endpoint generation: "Authorization: Bearer <jwt>", a raw
"Authorization: <token>", or a parallel "session_id: <token>" header.
"""

from typing import Dict, Mapping, Optional

from precast.config import USER_AGENT


def build_auth_headers(
    token: Optional[str],
    use_bearer: bool = True,
    include_session_id: bool = False,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Builds JSON request headers carrying the given token.

    Args:
        token: Access token; None or empty adds no credential headers
        use_bearer: Prefix the Authorization value with "Bearer "
        include_session_id: Also send the token in a "session_id" header
        extra: Additional headers, applied last

    Returns:
        Header dictionary

    Example:
        >>> build_auth_headers("abc")["Authorization"]
        'Bearer abc'
        >>> build_auth_headers("abc", use_bearer=False)["Authorization"]
        'abc'
    """
    headers: Dict[str, str] = {}

    if token:
        headers["Authorization"] = f"Bearer {token}" if use_bearer else token
        if include_session_id:
            headers["session_id"] = token

    headers.update({
        "Content-Type": "application/json",
        "Accept": "application/json",
        "X-Requested-With": "XMLHttpRequest",
        "User-Agent": USER_AGENT,
    })

    if extra:
        headers.update(extra)

    return headers
