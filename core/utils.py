"""
Response serializers shared by the routers. All keys are camelCase.
"""
from datetime import date, datetime
from typing import Optional, Union
from urllib.parse import quote

from database.models import (
    Announcement, AuditLog, Course, CourseMaterial, Enrollment, Profile, User
)


def iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value else None


def profile_to_dict(profile: Optional[Profile]) -> Optional[dict]:
    if profile is None:
        return None
    return {
        "studentId": profile.student_id,
        "phone": profile.phone,
        "address": profile.address,
        "dateOfBirth": iso(profile.date_of_birth),
        "bio": profile.bio,
    }


def user_to_dict(user: User, include_profile: bool = True) -> dict:
    data = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "lastLogin": iso(user.last_login),
        "createdAt": iso(user.created_at),
    }
    if include_profile:
        data["profile"] = profile_to_dict(user.profile)
    return data


def course_to_dict(course: Course) -> dict:
    return {
        "id": course.id,
        "code": course.code,
        "name": course.name,
        "description": course.description,
        "credits": course.credits,
        "capacity": course.capacity,
        "instructor": course.instructor,
        "schedule": course.schedule,
        "isActive": course.is_active,
        "createdAt": iso(course.created_at),
        "updatedAt": iso(course.updated_at),
    }


def enrollment_to_dict(enrollment: Enrollment, include_course: bool = False, include_user: bool = False) -> dict:
    data = {
        "id": enrollment.id,
        "userId": enrollment.user_id,
        "courseId": enrollment.course_id,
        "status": enrollment.status.value,
        "grade": enrollment.grade,
        "enrolledAt": iso(enrollment.enrolled_at),
        "updatedAt": iso(enrollment.updated_at),
    }
    if include_course:
        data["course"] = course_to_dict(enrollment.course)
    if include_user:
        data["user"] = user_to_dict(enrollment.user, include_profile=False)
    return data


def announcement_to_dict(announcement: Announcement) -> dict:
    return {
        "id": announcement.id,
        "title": announcement.title,
        "content": announcement.content,
        "priority": announcement.priority.value,
        "courseId": announcement.course_id,
        "courseName": announcement.course.name if announcement.course else None,
        "isActive": announcement.is_active,
        "createdAt": iso(announcement.created_at),
    }


def material_to_dict(material: CourseMaterial) -> dict:
    return {
        "id": material.id,
        "courseId": material.course_id,
        "title": material.title,
        "description": material.description,
        "fileName": material.file_name,
        "fileType": material.file_type,
        "fileSize": material.file_size,
        "week": material.week,
        "module": material.module,
        "createdAt": iso(material.created_at),
    }


def audit_log_to_dict(log: AuditLog) -> dict:
    return {
        "id": log.id,
        "userId": log.user_id,
        "userName": log.user.name if log.user else None,
        "userEmail": log.user.email if log.user else None,
        "action": log.action,
        "entity": log.entity,
        "entityId": log.entity_id,
        "details": log.details,
        "ipAddress": log.ip_address,
        "userAgent": log.user_agent,
        "createdAt": iso(log.created_at),
    }


def content_disposition(file_name: str) -> str:
    """
    Attachment header value for a stored file name.

    filename="..." carries an ASCII fallback with quotes escaped; filename*
    carries the exact name as percent-encoded UTF-8 (RFC 5987).
    """
    fallback = "".join(char if char.isascii() and char.isprintable() else "_" for char in file_name)
    fallback = fallback.replace("\\", "\\\\").replace('"', '\\"')
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name, safe='')}"
