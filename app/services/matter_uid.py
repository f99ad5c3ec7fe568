"""
Matter UID composer.

Format: {caseref}{country}[-{origin}][-{type_code}][.{idx}]
    TEST001US        plain national filing
    TEST001US-WO     national phase of a PCT application
    TEST001EP-DIV.2  second divisional in the same family

The UID is derived data: Matter.refresh_uid() calls this on every insert
and update, and no service accepts a uid from input.
"""


def _present(value) -> bool:
    return value is not None and str(value) != ""


def compose_matter_uid(caseref: str, country: str, origin: str | None = None,
                       type_code: str | None = None, idx: int | None = None) -> str:
    uid = f"{caseref}{country}"
    if _present(origin):
        uid += f"-{origin}"
    if _present(type_code):
        uid += f"-{type_code}"
    if _present(idx):
        uid += f".{idx}"
    return uid
