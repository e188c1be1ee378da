import io
import json

import openpyxl
import pytest
from botocore.stub import ANY
from sqlalchemy.exc import OperationalError

from conference_abstracts.extensions import db
from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.models.AuditLog import AuditLog
from conference_abstracts.services import statistics_service
from conference_abstracts.services.submission_service import submit_abstract
from conference_abstracts.services.status_service import transition_status
from tests.factories import abstract_payload, issued_key, object_url, words


def _post_json(client, url, payload, headers):
    return client.post(url, data=json.dumps(payload), content_type='application/json', headers=headers)


def _expect_put(s3_stub, content_type='application/pdf'):
    s3_stub.add_response(
        'put_object',
        {},
        {'Bucket': 'test-bucket', 'Key': ANY, 'Body': ANY, 'ContentType': content_type},
    )


class TestSubmitRoute:
    """POST /api/abstracts"""

    def test_submit_json(self, client, user_headers):
        response = _post_json(client, '/api/abstracts', abstract_payload(), user_headers)

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['success'] is True
        assert data['abstract']['status'] == 'pending'
        assert data['abstract']['bucket'] == 'article'
        assert data['abstract']['email'] == 'delegate@example.com'
        assert AuditLog.query.filter_by(event='abstract.create.success').count() == 1

    def test_submit_requires_token(self, client):
        response = _post_json(client, '/api/abstracts', abstract_payload(), {})

        assert response.status_code == 401
        assert json.loads(response.data) == {'success': False, 'error': 'Unauthorized', 'message': 'Please log in'}

    def test_garbage_token_rejected_uniformly(self, client):
        response = _post_json(client, '/api/abstracts', abstract_payload(), {'Authorization': 'Bearer not.a.jwt'})

        assert response.status_code == 401
        assert json.loads(response.data)['message'] == 'Please log in'

    def test_admin_cannot_submit(self, client, admin_headers):
        response = _post_json(client, '/api/abstracts', abstract_payload(), admin_headers)
        assert response.status_code == 403

    def test_missing_fields(self, client, user_headers):
        response = _post_json(client, '/api/abstracts', {'title': 'Only a title'}, user_headers)

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['success'] is False
        assert data['error'] == 'Missing required fields'
        assert 'abstract_content' in data['missing_fields']
        assert AuditLog.query.filter_by(event='abstract.create.failed').count() == 1

    def test_word_limit(self, client, user_headers):
        response = _post_json(client, '/api/abstracts', abstract_payload(abstract_content=words(301)), user_headers)

        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['word_count'] == 301
        assert data['limit'] == 300

    def test_non_object_body(self, client, user_headers):
        response = _post_json(client, '/api/abstracts', ['not', 'an', 'object'], user_headers)
        assert response.status_code == 400

    def test_multipart_with_attachment(self, client, user_headers, s3_stub):
        _expect_put(s3_stub)

        response = client.post(
            '/api/abstracts',
            data={
                'data': json.dumps(abstract_payload()),
                'files': (io.BytesIO(b'%PDF-1.4 body'), 'abstract.pdf', 'application/pdf'),
            },
            content_type='multipart/form-data',
            headers=user_headers,
        )

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['abstract']['has_file'] is True
        assert data['abstract']['files'][0]['file_name'] == 'abstract.pdf'
        s3_stub.assert_no_pending_responses()

    def test_multipart_plain_form_fields(self, client, user_headers):
        response = client.post(
            '/api/abstracts',
            data=abstract_payload(),
            content_type='multipart/form-data',
            headers=user_headers,
        )
        assert response.status_code == 201

    def test_storage_outage_is_generic_503(self, client, user_headers, s3_stub):
        s3_stub.add_client_error('put_object', service_error_code='InternalError', http_status_code=500)

        response = client.post(
            '/api/abstracts',
            data={
                'data': json.dumps(abstract_payload()),
                'files': (io.BytesIO(b'%PDF-1.4 body'), 'abstract.pdf', 'application/pdf'),
            },
            content_type='multipart/form-data',
            headers=user_headers,
        )

        assert response.status_code == 503
        assert json.loads(response.data) == {
            'success': False,
            'error': 'Operation failed, please retry',
            'retryable': True,
        }
        assert Abstracts.query.count() == 0


class TestListAndStatistics:

    @pytest.fixture
    def seeded(self, app, user_actor, other_actor, admin_actor):
        a = submit_abstract(abstract_payload(category='Case Report'), user_actor)
        submit_abstract(abstract_payload(category='Thesis Award 2025'), user_actor)
        submit_abstract(abstract_payload(category='E-Poster'), other_actor)
        transition_status(a.id, 'approved', actor=admin_actor)

    def test_admin_list_with_statistics(self, client, admin_headers, seeded):
        response = client.get('/api/abstracts', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['count'] == 3
        stats = data['statistics']
        assert stats['total'] == 3
        assert stats['approved'] == 1
        assert stats['pending'] == 2
        assert stats['total_users'] == 2
        assert stats['by_category']['innovators']['pending'] == 1

    def test_filters(self, client, admin_headers, seeded):
        data = json.loads(client.get('/api/abstracts?status=pending', headers=admin_headers).data)
        assert {a['status'] for a in data['abstracts']} == {'pending'}
        assert data['count'] == 2

        data = json.loads(client.get('/api/abstracts?category=innovators', headers=admin_headers).data)
        assert [a['category'] for a in data['abstracts']] == ['Thesis Award 2025']

        data = json.loads(client.get('/api/abstracts?category=e-poster', headers=admin_headers).data)
        assert data['count'] == 1

        data = json.loads(client.get('/api/abstracts?limit=1', headers=admin_headers).data)
        assert data['count'] == 1

    @pytest.mark.parametrize('query', ['status=accepted', 'limit=abc', 'limit=0'])
    def test_bad_filters(self, client, admin_headers, query):
        assert client.get(f'/api/abstracts?{query}', headers=admin_headers).status_code == 400

    def test_user_cannot_list_all(self, client, user_headers):
        assert client.get('/api/abstracts', headers=user_headers).status_code == 403

    def test_statistics_endpoint(self, client, admin_headers, seeded):
        response = client.get('/api/abstracts/statistics', headers=admin_headers)

        assert response.status_code == 200
        stats = json.loads(response.data)['statistics']
        assert sum(b['total'] for b in stats['by_category'].values()) == stats['total']

    def test_user_abstracts(self, client, user_headers, seeded):
        data = json.loads(client.get('/api/abstracts/user', headers=user_headers).data)

        assert len(data['abstracts']) == 2
        assert data['statistics']['total'] == 2
        assert data['statistics']['approved'] == 1

    def test_database_error_is_retryable_503(self, client, admin_headers, monkeypatch):
        def broken():
            raise OperationalError('SELECT 1', {}, Exception('connection lost'))

        monkeypatch.setattr(statistics_service, 'statistics_snapshot', broken)
        response = client.get('/api/abstracts/statistics', headers=admin_headers)

        assert response.status_code == 503
        assert json.loads(response.data)['retryable'] is True


class TestSingleAbstractRoutes:

    @pytest.fixture
    def abstract(self, app, user_actor):
        return submit_abstract(abstract_payload(), user_actor)

    def test_owner_get(self, client, user_headers, abstract):
        response = client.get(f'/api/abstracts/{abstract.id}', headers=user_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['abstract']['abstract_number'] == abstract.abstract_number

    def test_other_user_get_forbidden(self, client, other_headers, abstract):
        assert client.get(f'/api/abstracts/{abstract.id}', headers=other_headers).status_code == 403

    @pytest.mark.parametrize('abstract_id', ['999', 'abc', '100000000000000000000'])
    def test_get_unknown(self, client, admin_headers, abstract_id):
        response = client.get(f'/api/abstracts/{abstract_id}', headers=admin_headers)
        assert response.status_code == 404
        assert json.loads(response.data)['error'] == 'Abstract not found'

    def test_owner_edit(self, client, user_headers, abstract):
        response = client.put(
            f'/api/abstracts/{abstract.id}',
            data=json.dumps({'presenterName': 'Dr. Renamed'}),
            content_type='application/json',
            headers=user_headers,
        )
        assert response.status_code == 200
        assert json.loads(response.data)['abstract']['presenter_name'] == 'Dr. Renamed'

    def test_owner_edit_after_review(self, client, user_headers, abstract, admin_actor):
        transition_status(abstract.id, 'rejected', actor=admin_actor)

        response = client.put(
            f'/api/abstracts/{abstract.id}',
            data=json.dumps({'title': 'Second try'}),
            content_type='application/json',
            headers=user_headers,
        )

        assert response.status_code == 403
        assert json.loads(response.data)['status'] == 'rejected'

    def test_owner_delete(self, client, user_headers, abstract):
        response = client.delete(f'/api/abstracts/{abstract.id}', headers=user_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['deleted_id'] == abstract.id
        assert Abstracts.query.count() == 0

    def test_other_user_delete_forbidden(self, client, other_headers, abstract):
        assert client.delete(f'/api/abstracts/{abstract.id}', headers=other_headers).status_code == 403
        assert Abstracts.query.count() == 1


class TestAdminStatusRoutes:

    @pytest.fixture
    def abstracts(self, app, user_actor):
        return [submit_abstract(abstract_payload(), user_actor) for _ in range(3)]

    def test_single_transition(self, client, admin_headers, abstracts):
        response = _post_json(
            client,
            '/api/admin/abstracts/status',
            {'abstractId': abstracts[0].id, 'status': 'approved', 'reviewerComments': 'Accepted for oral'},
            admin_headers,
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['abstract']['status'] == 'approved'
        assert data['abstract']['reviewer_comments'] == 'Accepted for oral'

    def test_single_transition_invalid_status(self, client, admin_headers, abstracts):
        response = _post_json(
            client, '/api/admin/abstracts/status', {'abstract_id': abstracts[0].id, 'status': 'maybe'}, admin_headers,
        )
        assert response.status_code == 400
        assert json.loads(response.data)['allowed'] == ['pending', 'approved', 'rejected']

    def test_single_transition_missing_id(self, client, admin_headers):
        response = _post_json(client, '/api/admin/abstracts/status', {'status': 'approved'}, admin_headers)
        assert response.status_code == 400
        assert 'abstract_id' in json.loads(response.data)['fields']

    def test_user_cannot_transition(self, client, user_headers, abstracts):
        response = _post_json(
            client, '/api/admin/abstracts/status', {'abstract_id': abstracts[0].id, 'status': 'approved'}, user_headers,
        )
        assert response.status_code == 403

    def test_bulk_update(self, client, admin_headers, abstracts):
        ids = [a.id for a in abstracts]
        response = _post_json(
            client, '/api/abstracts/bulk-update', {'abstractIds': ids + ['bogus'], 'status': 'REJECTED'}, admin_headers,
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['updated'] == 3
        assert data['failed_count'] == 1
        assert data['failed'][0] == {'id': 'bogus', 'error': 'invalid_id'}
        assert data['status'] == 'rejected'

    def test_single_transition_fractional_id(self, client, admin_headers, abstracts):
        response = _post_json(
            client, '/api/admin/abstracts/status', {'abstract_id': abstracts[0].id + 0.9, 'status': 'approved'}, admin_headers,
        )

        assert response.status_code == 404
        assert db.session.get(Abstracts, abstracts[0].id).status == 'pending'

    def test_bulk_update_oversized_id(self, client, admin_headers, abstracts):
        response = _post_json(
            client, '/api/abstracts/bulk-update', {'abstract_ids': [abstracts[0].id, 10 ** 20], 'status': 'approved'}, admin_headers,
        )

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['succeeded'] == [abstracts[0].id]
        assert data['failed'] == [{'id': 10 ** 20, 'error': 'not_found'}]

    def test_bulk_update_requires_ids(self, client, admin_headers):
        response = _post_json(client, '/api/abstracts/bulk-update', {'abstract_ids': [], 'status': 'approved'}, admin_headers)
        assert response.status_code == 400


class TestFilesAndExport:

    @pytest.fixture
    def with_file(self, app, user_actor):
        key = issued_key(user_actor.user_id)
        return submit_abstract(abstract_payload(uploaded_files=[{
            'originalName': 'paper.pdf',
            'path': object_url(key),
            'key': key,
            'size': 1024,
        }]), user_actor)

    def test_download_single_file_redirects(self, client, user_headers, with_file):
        response = client.get(f'/api/abstracts/download/{with_file.id}', headers=user_headers)

        assert response.status_code == 302
        assert with_file.files[0].file_key in response.headers['Location']

    def test_download_as_json(self, client, admin_headers, with_file):
        response = client.get(f'/api/abstracts/download/{with_file.id}?format=json', headers=admin_headers)

        assert response.status_code == 200
        files = json.loads(response.data)['files']
        assert files[0]['name'] == 'paper.pdf'
        assert 'X-Amz-Signature' in files[0]['url']

    def test_download_legacy_path_only(self, client, user_headers, user_actor):
        abstract = submit_abstract(abstract_payload(
            file_path=object_url(issued_key(user_actor.user_id, name='legacy.pdf')),
            file_name='legacy.pdf',
        ), user_actor)

        response = client.get(f'/api/abstracts/download/{abstract.id}?format=json', headers=user_headers)

        assert response.status_code == 200
        assert json.loads(response.data)['files'][0]['name'] == 'legacy.pdf'

    def test_download_without_file(self, client, user_headers, user_actor):
        abstract = submit_abstract(abstract_payload(), user_actor)

        response = client.get(f'/api/abstracts/download/{abstract.id}', headers=user_headers)

        assert response.status_code == 404
        assert json.loads(response.data)['code'] == 'NO_FILE_ATTACHED'

    def test_reupload_files(self, client, user_headers, with_file, s3_stub):
        _expect_put(s3_stub, content_type='text/plain')

        response = client.post(
            f'/api/abstracts/{with_file.id}/files',
            data={'files': (io.BytesIO(b'notes'), 'notes.txt', 'text/plain')},
            content_type='multipart/form-data',
            headers=user_headers,
        )

        assert response.status_code == 200
        assert len(json.loads(response.data)['abstract']['files']) == 2

    def test_export_excel(self, client, admin_headers, with_file):
        response = client.get('/api/abstracts/export-excel', headers=admin_headers)

        assert response.status_code == 200
        assert response.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        assert 'abstracts_master_' in response.headers['Content-Disposition']

        sheet = openpyxl.load_workbook(io.BytesIO(response.data)).active
        assert sheet.title == 'Abstracts Master Sheet'
        assert sheet.cell(row=1, column=1).value == 'Abstract No'
        assert sheet.cell(row=2, column=1).value == with_file.abstract_number
        assert sheet.cell(row=2, column=10).value == 'PENDING'
        assert sheet.cell(row=2, column=13).value == 'Available'
        assert AuditLog.query.filter_by(event='abstract.excel.export.success').count() == 1

    def test_export_is_admin_only(self, client, user_headers):
        assert client.get('/api/abstracts/export-excel', headers=user_headers).status_code == 403
