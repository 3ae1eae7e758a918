import json
import logging
import re
import sys
from dataclasses import dataclass
from typing import Optional, Tuple

from coderoom.errors import UnsupportedLanguage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LanguageSpec:
    """How to run one language.

    ``command`` runs inside the container with the workspace mounted at
    ``/code``; ``local_command`` runs with the workspace as working directory.
    Both may reference ``{filename}`` and ``{name}``.
    """
    id: str
    extension: str
    image: str
    command: Tuple[str, ...]
    local_command: Optional[Tuple[str, ...]] = None
    name_pattern: Optional[str] = None
    default_name: str = 'program'

    def derive_name(self, source_code):
        """Name the source file must carry; falls back to ``default_name``."""
        if not self.name_pattern:
            return self.default_name
        match = re.search(self.name_pattern, source_code or '')
        if match:
            return match.group(1)
        return self.default_name

    def filename_for(self, name):
        return f"{name}.{self.extension}"

    def render(self, name, local=False):
        template = self.local_command if local else self.command
        if template is None:
            raise UnsupportedLanguage(self.id)
        filename = self.filename_for(name)
        return [part.replace('{filename}', filename).replace('{name}', name) for part in template]

    def get_info(self):
        return {'id': self.id, 'extension': self.extension, 'image': self.image}


def _compile_and_run(compiler):
    return (
        ('/bin/bash', '-c', f'cd /code && {compiler} -o program {{filename}} && ./program'),
        ('/bin/sh', '-c', f'{compiler} -o program {{filename}} && ./program'),
    )


_C = _compile_and_run('gcc')
_CPP = _compile_and_run('g++')

BUILTIN_LANGUAGES = (
    LanguageSpec('python', 'py', 'python:3.10',
                 ('python', '-u', '/code/{filename}'),
                 (sys.executable, '-u', '{filename}')),
    LanguageSpec('javascript', 'js', 'node:16-alpine',
                 ('node', '/code/{filename}'),
                 ('node', '{filename}')),
    LanguageSpec('java', 'java', 'openjdk:11',
                 ('/bin/bash', '-c', 'cd /code && javac {filename} && java -cp /code {name}'),
                 ('/bin/sh', '-c', 'javac {filename} && java -cp . {name}'),
                 name_pattern=r'public\s+class\s+([A-Za-z0-9_]+)',
                 default_name='Main'),
    LanguageSpec('c', 'c', 'gcc:latest', *_C),
    LanguageSpec('cpp', 'cpp', 'gcc:latest', *_CPP),
    LanguageSpec('go', 'go', 'golang:alpine',
                 ('go', 'run', '/code/{filename}'),
                 ('go', 'run', '{filename}')),
    LanguageSpec('rust', 'rs', 'rust:slim',
                 ('/bin/bash', '-c', 'cd /code && rustc {filename} && ./program'),
                 ('/bin/sh', '-c', 'rustc {filename} && ./program')),
    LanguageSpec('ruby', 'rb', 'ruby:alpine',
                 ('ruby', '/code/{filename}'),
                 ('ruby', '{filename}')),
    LanguageSpec('php', 'php', 'php:cli-alpine',
                 ('php', '/code/{filename}'),
                 ('php', '{filename}')),
)


def _spec_from_entry(entry):
    local = entry.get('localCommand')
    return LanguageSpec(
        id=entry['id'],
        extension=entry['extension'],
        image=entry['image'],
        command=tuple(entry['command']),
        local_command=tuple(local) if local else None,
        name_pattern=entry.get('namePattern'),
        default_name=entry.get('defaultName', 'program'),
    )


class LanguageRegistry:
    def __init__(self, specs=BUILTIN_LANGUAGES):
        self._specs = {spec.id: spec for spec in specs}

    @classmethod
    def from_config(cls, config):
        registry = cls()
        languages_file = config.get('LANGUAGES_FILE')
        if languages_file:
            registry.load_file(languages_file)
        return registry

    def load_file(self, path):
        """Merge LanguageSpec entries from a JSON list over the current table."""
        with open(path, encoding='utf-8') as f:
            entries = json.load(f)
        for entry in entries:
            spec = _spec_from_entry(entry)
            self._specs[spec.id] = spec
        logger.info(f"Loaded {len(entries)} language entries from {path}")

    def register(self, spec):
        self._specs[spec.id] = spec

    def resolve(self, language_id):
        if not isinstance(language_id, str):
            return None
        return self._specs.get(language_id)

    def require(self, language_id):
        spec = self.resolve(language_id)
        if spec is None:
            raise UnsupportedLanguage(language_id)
        return spec

    def ids(self):
        return sorted(self._specs)

    def __contains__(self, language_id):
        return self.resolve(language_id) is not None

    def __iter__(self):
        return iter(self._specs[key] for key in self.ids())
