from .errors import ValidationError
from .utils import clean_string_list, clean_text, make_slug, parse_bool

REQUIRED = 'This field is required.'


class FieldCleaner:
    """Collects cleaned values and per-field errors from a JSON payload.

    With ``creating=False`` only the keys present in the payload are cleaned,
    which gives PATCH semantics; required checks apply to creation only.
    """

    def __init__(self, fields, creating=True):
        self.fields = fields if isinstance(fields, dict) else {}
        self.creating = creating
        self.values = {}
        self.errors = {}

    def has(self, name):
        return name in self.fields

    def error(self, name, message):
        self.errors.setdefault(name, message)

    def _missing(self, name, required):
        if name in self.fields:
            return False
        if required and self.creating:
            self.error(name, REQUIRED)
        return True

    def text(self, name, max_length=255, required=False):
        if self._missing(name, required):
            return None
        value = clean_text(self.fields.get(name), max_length)
        if required and not value:
            self.error(name, REQUIRED)
            return None
        self.values[name] = value
        return value

    def choice(self, name, choices, default=None, required=False):
        if self._missing(name, required):
            if self.creating and default is not None:
                self.values[name] = default
            return self.values.get(name)
        value = clean_text(self.fields.get(name), 120)
        if value not in choices:
            self.error(name, 'Choose one of: ' + ', '.join(str(choice) for choice in choices))
            return None
        self.values[name] = value
        return value

    def boolean(self, name, default=None):
        if name not in self.fields:
            if self.creating and default is not None:
                self.values[name] = default
            return self.values.get(name)
        self.values[name] = parse_bool(self.fields.get(name))
        return self.values[name]

    def integer(self, name, min_value=None, max_value=None, required=False, default=None):
        if self._missing(name, required):
            if self.creating and default is not None:
                self.values[name] = default
            return self.values.get(name)
        raw = self.fields.get(name)
        if raw is None or raw == '':
            if required:
                self.error(name, REQUIRED)
            else:
                self.values[name] = None
            return None
        try:
            value = int(raw)
        except (TypeError, ValueError):
            self.error(name, 'Must be a whole number.')
            return None
        if (min_value is not None and value < min_value) or (max_value is not None and value > max_value):
            self.error(name, f'Must be between {min_value} and {max_value}.')
            return None
        self.values[name] = value
        return value

    def string_list(self, name, max_items=50, max_length=120, required=False):
        if self._missing(name, required):
            if self.creating and not required:
                self.values[name] = []
            return self.values.get(name)
        value = clean_string_list(self.fields.get(name), max_items, max_length)
        if required and not value:
            self.error(name, 'Select at least one option.')
            return None
        self.values[name] = value
        return value

    def mapping(self, name):
        if name not in self.fields:
            if self.creating:
                self.values[name] = {}
            return self.values.get(name)
        value = self.fields.get(name)
        if value is None:
            value = {}
        if not isinstance(value, dict):
            self.error(name, 'Must be an object.')
            return None
        self.values[name] = value
        return value

    def sequence(self, name):
        if name not in self.fields:
            if self.creating:
                self.values[name] = []
            return self.values.get(name)
        value = self.fields.get(name)
        if value is None:
            value = []
        if not isinstance(value, list):
            self.error(name, 'Must be a list.')
            return None
        self.values[name] = value
        return value

    def slug(self, name='slug', source=None):
        raw = clean_text(self.fields.get(name), 200) if name in self.fields else ''
        if raw:
            value = make_slug(raw)
        elif name in self.fields:
            self.error(name, REQUIRED)
            return None
        elif self.creating and source:
            value = make_slug(source)
        else:
            return None
        if not value:
            self.error(name, 'Use lowercase letters, numbers and hyphens.')
            return None
        self.values[name] = value
        return value

    def done(self):
        if self.errors:
            raise ValidationError(self.errors)
        return self.values
