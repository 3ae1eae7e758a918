from flask_restx import Namespace, Resource, fields

from coderoom.errors import DirectoryIOError
from coderoom.extensions import current_coderoom

# Create namespace
ns = Namespace('sessions', description='Coding session operations')

# Define models for Swagger documentation
session_create_model = ns.model('SessionCreate', {
    'language': fields.String(required=False, default='python', description='Programming language id'),
    'code': fields.String(required=False, default='', description='Initial source code')
})

session_created_model = ns.model('SessionCreated', {
    'sessionId': fields.String(description='Session ID'),
    'documentId': fields.String(description='Document ID'),
    'language': fields.String(description='Programming language')
})

session_detail_model = ns.model('SessionDetail', {
    'session': fields.Raw(description='Session info'),
    'document': fields.Raw(description='Document info (content is owned by the sync service)'),
    'executionActive': fields.Boolean(description='Whether a program is currently running')
})

error_model = ns.model('Error', {
    'message': fields.String(description='Error message')
})

success_model = ns.model('Success', {
    'message': fields.String(description='Success message')
})


@ns.route('')
class SessionList(Resource):
    @ns.doc('create_session')
    @ns.expect(session_create_model, validate=False)
    @ns.marshal_with(session_created_model, code=201)
    @ns.response(400, 'Unsupported language', error_model)
    @ns.response(500, 'Workspace could not be created', error_model)
    def post(self):
        """Create a coding session, its document and its workspace

        Example payload:
        {
            "language": "python",
            "code": "print('Hello World!')"
        }
        """
        coderoom = current_coderoom()
        data = ns.payload or {}
        language = data.get('language') or 'python'
        code = data.get('code') or ''

        if language not in coderoom.registry:
            ns.abort(400, f"Unsupported language: {language}")
        if not isinstance(code, str):
            ns.abort(400, "code must be a string")

        try:
            session, document = coderoom.sessions.create_session(language, code)
        except DirectoryIOError as e:
            ns.abort(500, e.message)

        return {
            "sessionId": session.id,
            "documentId": document.id,
            "language": document.language
        }, 201


@ns.route('/<string:session_id>')
@ns.param('session_id', 'The session identifier')
class SessionDetail(Resource):
    @ns.doc('get_session')
    @ns.response(200, 'Success', session_detail_model)
    @ns.response(404, 'Session not found', error_model)
    def get(self, session_id):
        """Get session details"""
        coderoom = current_coderoom()
        session = coderoom.sessions.get_session(session_id)
        if session is None:
            ns.abort(404, "Session not found")

        document = coderoom.sessions.get_document(session.document_id)
        return {
            "session": session.get_info(),
            "document": document.get_info() if document else None,
            "executionActive": coderoom.supervisor.active(session_id) is not None
        }, 200

    @ns.doc('end_session')
    @ns.marshal_with(success_model)
    @ns.response(404, 'Session not found', error_model)
    def delete(self, session_id):
        """Stop any running program and end the session"""
        coderoom = current_coderoom()
        if coderoom.sessions.get_session(session_id) is None:
            ns.abort(404, "Session not found")

        coderoom.supervisor.stop(session_id)
        if not coderoom.sessions.end_session(session_id):
            ns.abort(404, "Session not found")

        return {"message": "Session ended successfully"}, 200
