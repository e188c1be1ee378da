import pytest

from conference_abstracts.errors import ValidationError
from conference_abstracts.services.word_count import count_words, enforce_word_limit, resolve_word_limit
from tests.factories import words


class TestCountWords:

    @pytest.mark.parametrize('text, expected', [
        (None, 0),
        ('', 0),
        ('   \n\t ', 0),
        ('one', 1),
        ('  leading and trailing  ', 3),
        ('tabs\tand\nnewlines   collapse', 4),
    ])
    def test_count(self, text, expected):
        assert count_words(text) == expected


class TestWordLimits:

    def test_default_limit(self, app):
        assert resolve_word_limit('Oral', 'Original Article') == 300

    def test_bucket_limit(self, app):
        assert resolve_word_limit('Oral', 'Thesis Award 2025') == 500

    def test_exact_label_beats_bucket(self, app):
        app.config['ABSTRACT_WORD_LIMITS'] = {'innovators': 500, 'Thesis Award 2025': 400}
        assert resolve_word_limit(None, 'thesis award 2025') == 400

    def test_presentation_type_beats_category(self, app):
        app.config['ABSTRACT_WORD_LIMITS'] = {'e-poster': 250, 'case report': 350}
        assert resolve_word_limit('E-Poster', 'Case Report') == 250

    def test_configured_default(self, app):
        app.config['ABSTRACT_WORD_LIMIT_DEFAULT'] = 150
        assert resolve_word_limit(None, None) == 150

    def test_at_limit_accepted(self, app):
        assert enforce_word_limit(words(300), 'Oral', 'Original Article') == 300

    def test_over_limit_rejected(self, app):
        with pytest.raises(ValidationError) as exc_info:
            enforce_word_limit(words(301), 'Oral', 'Original Article')
        err = exc_info.value
        assert err.status_code == 400
        assert '301' in err.message and '300' in err.message
        assert err.details == {'word_count': 301, 'limit': 300}

    def test_innovators_allow_longer_body(self, app):
        assert enforce_word_limit(words(450), 'Oral', 'Innovators Thesis') == 450
