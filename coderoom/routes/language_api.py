from flask import current_app
from flask_restx import Namespace, Resource, fields

from coderoom.extensions import current_coderoom

ns = Namespace('runtime', description='Supported languages and real-time connection settings')

language_model = ns.model('Language', {
    'id': fields.String(description='Language id'),
    'extension': fields.String(description='Source file extension'),
    'image': fields.String(description='Runtime image')
})

rtc_config_model = ns.model('RtcConfig', {
    'iceServers': fields.List(fields.Raw, description='ICE servers for peer connections')
})


@ns.route('/languages')
class LanguageList(Resource):
    @ns.doc('list_languages')
    @ns.marshal_list_with(language_model)
    def get(self):
        """List languages that can be executed"""
        return [spec.get_info() for spec in current_coderoom().registry]


@ns.route('/rtc-config')
class RtcConfig(Resource):
    @ns.doc('rtc_config')
    @ns.marshal_with(rtc_config_model)
    def get(self):
        """ICE servers the browser should use for peer connections"""
        return {"iceServers": current_app.config['ICE_SERVERS']}
