# /wetreat/utils/error_handlers.py
from flask import jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from wetreat.extensions import db
from wetreat.utils.errors import AppError, StoreError


def register_error_handlers(app):
    @app.errorhandler(AppError)
    def app_error(error):
        if error.http_status >= 500:
            db.session.rollback()
            current_app.logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SQLAlchemyError)
    def store_error(error):
        db.session.rollback()
        current_app.logger.error(f"Store failure: {error}")
        return jsonify(StoreError().to_dict()), StoreError.http_status

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found', 'code': 'NOT_FOUND'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed', 'code': 'METHOD_NOT_ALLOWED'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        current_app.logger.error(f"Internal server error: {error}")
        return jsonify({'error': 'Internal server error', 'code': 'INTERNAL_ERROR'}), 500
