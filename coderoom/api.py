from flask_restx import Api


def init_api(app):
    """Create the REST API with Swagger documentation and register its namespaces"""
    api = Api(
        app,
        version='1.0',
        title='CodeRoom API',
        description='Collaborative coding rooms with sandboxed live execution',
        doc='/docs',
        prefix='/api'
    )

    from coderoom.routes.session_api import ns as session_ns
    from coderoom.routes.language_api import ns as language_ns
    api.add_namespace(session_ns, path='/sessions')
    api.add_namespace(language_ns, path='/')
    return api
