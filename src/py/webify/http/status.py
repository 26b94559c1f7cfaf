from http import HTTPStatus

# Reason phrases indexed by status code
HTTP_STATUS: dict[int, str] = {_.value: _.phrase for _ in HTTPStatus}

# Statuses that never carry a body
HTTP_NO_BODY: frozenset[int] = frozenset((204, 304)) | frozenset(range(100, 200))


# EOF
