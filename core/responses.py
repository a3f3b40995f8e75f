"""
JSON envelope shared by the storefront API.

    {"success": true, "data": {...}}
    {"success": false, "error": {"code": "...", "message": "...", "details": ...}}
"""
from rest_framework import status
from rest_framework.response import Response


def error_body(code, message, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return {'success': False, 'error': error}


def success_response(data, http_status=status.HTTP_200_OK):
    return Response({'success': True, 'data': data}, status=http_status)


def error_response(code, message, http_status, details=None):
    return Response(error_body(code, message, details), status=http_status)
