"""HTTP surface for design approvals, including multipart uploads."""
import io
import os

from conftest import design_file, login
from marketplace.models import DesignApproval

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64


def _multipart(conv, variant, files, **fields):
    data = {
        'conversation_id': str(conv.id),
        'variant_id': str(variant.id),
        'files': files,
    }
    data.update(fields)
    return data


def _saved_files(upload_dir):
    if not os.path.isdir(upload_dir):
        return []
    return os.listdir(upload_dir)


def test_multipart_upload_saves_files(buyer_client, conversation, product,
                                      upload_dir):
    resp = buyer_client.post(
        '/api/design-approvals',
        data=_multipart(conversation, product.variants[0], [
            (io.BytesIO(PNG_BYTES), 'front.png', 'image/png'),
            (io.BytesIO(b'%PDF-1.4'), 'proof.pdf', 'application/pdf'),
        ]),
        content_type='multipart/form-data',
    )

    assert resp.status_code == 201
    design = resp.get_json()['design']
    assert design['status'] == 'pending'
    assert [f['filename'] for f in design['design_files']] == [
        'front.png', 'proof.pdf']
    assert design['design_files'][0]['size'] == len(PNG_BYTES)
    assert len(_saved_files(upload_dir)) == 2

    file_resp = buyer_client.get(design['design_files'][0]['url'])
    assert file_resp.status_code == 200
    assert file_resp.data == PNG_BYTES


def test_oversized_upload_leaves_nothing_behind(buyer_client, conversation,
                                                product, upload_dir):
    big = io.BytesIO(b'0' * (15 * 1024 * 1024))
    resp = buyer_client.post(
        '/api/design-approvals',
        data=_multipart(conversation, product.variants[0], [
            (io.BytesIO(PNG_BYTES), 'small.png', 'image/png'),
            (big, 'huge.png', 'image/png'),
        ]),
        content_type='multipart/form-data',
    )

    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'validation_error'
    assert DesignApproval.query.count() == 0
    assert _saved_files(upload_dir) == []


def test_failed_create_removes_saved_files(buyer_client, conversation,
                                           product, upload_dir):
    variant = product.variants[0]
    first = buyer_client.post(
        '/api/design-approvals',
        data=_multipart(conversation, variant, [
            (io.BytesIO(PNG_BYTES), 'one.png', 'image/png')]),
        content_type='multipart/form-data',
    )
    assert first.status_code == 201

    second = buyer_client.post(
        '/api/design-approvals',
        data=_multipart(conversation, variant, [
            (io.BytesIO(PNG_BYTES), 'two.png', 'image/png')]),
        content_type='multipart/form-data',
    )

    assert second.status_code == 409
    assert len(_saved_files(upload_dir)) == 1
    assert DesignApproval.query.count() == 1


def test_json_upload_and_seller_review(app, seller, buyer_client,
                                       conversation, product):
    resp = buyer_client.post('/api/design-approvals', json={
        'conversation_id': conversation.id,
        'variant_id': product.variants[1].id,
        'design_files': [design_file('art.svg', 300, 'image/svg+xml')],
    })
    assert resp.status_code == 201
    design_id = resp.get_json()['design']['id']

    seller_client = login(app.test_client(), seller)
    resp = seller_client.post(
        f'/api/design-approvals/{design_id}/request-changes', json={})
    assert resp.status_code == 400

    resp = seller_client.post(f'/api/design-approvals/{design_id}/approve')
    assert resp.status_code == 200
    assert resp.get_json()['design']['status'] == 'approved'

    resp = seller_client.post(
        f'/api/design-approvals/{design_id}/reject',
        json={'reason': 'late'})
    assert resp.status_code == 409
    assert resp.get_json()['code'] == 'invalid_state'

    library = buyer_client.get('/api/design-approvals/library').get_json()
    assert [d['id'] for d in library['items']] == [design_id]


def test_buyer_cannot_approve(buyer_client, conversation, product):
    resp = buyer_client.post('/api/design-approvals', json={
        'conversation_id': conversation.id,
        'variant_id': product.variants[0].id,
        'design_files': [design_file()],
    })
    design_id = resp.get_json()['design']['id']

    resp = buyer_client.post(f'/api/design-approvals/{design_id}/approve')
    assert resp.status_code == 403


def test_outsider_cannot_read_design(app, other_buyer, buyer_client,
                                     conversation, product):
    resp = buyer_client.post('/api/design-approvals', json={
        'conversation_id': conversation.id,
        'variant_id': product.variants[0].id,
        'design_files': [design_file()],
    })
    design_id = resp.get_json()['design']['id']

    outsider = login(app.test_client(), other_buyer)
    resp = outsider.get(f'/api/design-approvals/{design_id}')
    assert resp.status_code == 403


def test_list_filters_by_status(buyer_client, conversation, product):
    buyer_client.post('/api/design-approvals', json={
        'conversation_id': conversation.id,
        'variant_id': product.variants[0].id,
        'design_files': [design_file()],
    })
    pending = buyer_client.get('/api/design-approvals?status=pending')
    assert len(pending.get_json()['items']) == 1
    approved = buyer_client.get('/api/design-approvals?status=approved')
    assert approved.get_json()['items'] == []
