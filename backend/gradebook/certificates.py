"""Certificate records and certificate text rendering."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping

from .grading import GradingConfig, format_numeric, is_passing, level_final_grade

CERTIFICATE_TEMPLATE_ID = "certificateTemplate"

DEFAULT_CERTIFICATE_TEMPLATE = (
    "La academia [NOMBRE_INSTITUCION] hace constar que [NOMBRE_ESTUDIANTE] "
    "ha completado el nivel [NOMBRE_NIVEL]."
)

UNKNOWN_TEACHER = "Desconocido"
GROUP_TYPES = ("Saturday", "Sunday")

_PLACEHOLDER_RE = re.compile(r"\[([A-Z_]+)\]")


@dataclass
class StudentLevelRecord:
    student_id: str
    student_name: str
    level_name: str
    final_grade: float | None
    passed: bool | None
    teacher_name: str | None
    certificate_code: str
    group_type: str | None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "student_name": self.student_name,
            "level_name": self.level_name,
            "final_grade": format_numeric(self.final_grade),
            "passed": self.passed,
            "teacher_name": self.teacher_name,
            "certificate_code": self.certificate_code,
            "group_type": self.group_type,
        }


def find_student_group(
    student_id: str, groups: Iterable[Mapping[str, Any]]
) -> Mapping[str, Any] | None:
    """Return the first group whose roster contains the student."""

    for group in groups:
        student_ids = group.get("student_ids")
        if isinstance(student_ids, list) and student_id in student_ids:
            return group
    return None


def build_level_records(
    students: Iterable[Mapping[str, Any]],
    groups: List[Mapping[str, Any]],
    teachers: Mapping[str, Mapping[str, Any]],
    config: GradingConfig,
) -> List[StudentLevelRecord]:
    """One record per (student, level), sorted by student name then level."""

    records: List[StudentLevelRecord] = []
    for student in students:
        levels = student.get("grades_by_level")
        if not isinstance(levels, Mapping):
            continue

        student_id = str(student.get("_id", ""))
        group = find_student_group(student_id, groups)
        teacher_name = None
        group_type = None
        if group is not None:
            group_type = group.get("type") if group.get("type") in GROUP_TYPES else None
            teacher_id = group.get("teacher_id")
            if teacher_id:
                teacher = teachers.get(teacher_id)
                teacher_name = (teacher or {}).get("name") or UNKNOWN_TEACHER

        for level_name, level in levels.items():
            level = level if isinstance(level, Mapping) else {}
            final_grade = level_final_grade(level, config)
            records.append(
                StudentLevelRecord(
                    student_id=student_id,
                    student_name=str(student.get("name") or ""),
                    level_name=level_name,
                    final_grade=final_grade,
                    passed=is_passing(final_grade, config),
                    teacher_name=teacher_name,
                    certificate_code=str(level.get("certificate_code") or ""),
                    group_type=group_type,
                )
            )

    records.sort(key=lambda record: (record.student_name.casefold(), record.level_name.casefold()))
    return records


def render_certificate_text(
    template: str,
    *,
    institution_name: str,
    student_name: str,
    level_name: str,
    group_type: str | None = None,
    teacher_name: str | None = None,
    sede_name: str | None = None,
    certificate_code: str | None = None,
) -> str:
    """Fill the bracketed placeholders of a certificate template.

    Unknown placeholders are left untouched.
    """

    program = group_type.upper() if group_type else None
    values = {
        "NOMBRE_INSTITUCION": institution_name.upper(),
        "NOMBRE_ESTUDIANTE": student_name.upper(),
        "NOMBRE_NIVEL": level_name.upper(),
        "TIPO_PROGRAMA": program or "GENERAL",
        "TURNO_PROGRAMA": program or "NO ESPECIFICADO",
        "NOMBRE_MAESTRO": teacher_name.upper() if teacher_name else "NO ASIGNADO",
        "NOMBRE_SEDE": sede_name.upper() if sede_name else "SEDE PRINCIPAL",
        "CODIGO_CERTIFICADO": certificate_code or "N/A",
    }

    def _replace(match: re.Match) -> str:
        return values.get(match.group(1), match.group(0))

    return _PLACEHOLDER_RE.sub(_replace, template)


__all__ = [
    "CERTIFICATE_TEMPLATE_ID",
    "DEFAULT_CERTIFICATE_TEMPLATE",
    "StudentLevelRecord",
    "UNKNOWN_TEACHER",
    "build_level_records",
    "find_student_group",
    "render_certificate_text",
]
