"""Application error taxonomy and the JSON error handlers that surface it."""
from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    status_code = 500
    code = 'error'
    message = 'Request failed'

    def __init__(self, message=None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.extra = extra

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        payload.update(self.extra)
        return payload


class ValidationError(AppError):
    status_code = 400
    code = 'validation_failed'
    message = 'Validation failed'

    def __init__(self, fields=None, message=None):
        super().__init__(message, fields=dict(fields or {}))

    @property
    def fields(self):
        return self.extra['fields']


class NotFoundError(AppError):
    status_code = 404
    code = 'not_found'
    message = 'Not found'


class AuthError(AppError):
    status_code = 401
    code = 'unauthenticated'
    message = 'Authentication required'

    def __init__(self, message=None, forbidden=False):
        if forbidden:
            super().__init__(message or 'Insufficient permissions')
            self.status_code = 403
            self.code = 'forbidden'
        else:
            super().__init__(message, authenticated=False)


class ConflictError(AppError):
    status_code = 409
    code = 'conflict'
    message = 'Conflict'


class RateLimitError(AppError):
    status_code = 429
    code = 'rate_limited'
    message = 'Too many requests. Please try again later.'

    def __init__(self, retry_after, message=None):
        super().__init__(message, retry_after=int(retry_after))


def register_error_handlers(app, db):
    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            app.logger.error('Request failed: %s', error.message)
        response = jsonify(error.to_dict())
        if isinstance(error, RateLimitError):
            response.headers['Retry-After'] = str(error.extra['retry_after'])
        return response, error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        app.logger.exception('Database operation failed.')
        return jsonify({'error': 'Database operation failed', 'code': 'database_error'}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        payload = {
            'error': error.description or error.name,
            'code': (error.name or 'error').lower().replace(' ', '_'),
        }
        return jsonify(payload), error.code

    @app.errorhandler(500)
    def handle_server_error(error):
        app.logger.error('Unhandled server error: %s', error)
        return jsonify({'error': 'Internal server error', 'code': 'internal_error'}), 500
