"""
Integration Tests for the Portal API
Tests the HTTP surface end to end: auth, admin transitions, offers,
notifications, messages and document upload
"""
import uuid

import pytest
from httpx import AsyncClient

from app.main import app
from app.models.account import AccountRole, ApprovalStatus
from app.modules.auth.dependencies import get_storage


class FakeStorage:
    """Records uploads instead of talking to an object store"""

    def __init__(self):
        self.uploads = []

    async def upload(self, file_obj, folder, filename=None, content_type=None):
        public_id = f"{folder}/{uuid.uuid4().hex}"
        self.uploads.append({"public_id": public_id, "content": file_obj.read(), "content_type": content_type})
        return {"url": f"https://files.test/{public_id}", "public_id": public_id}


@pytest.fixture
def storage():
    fake_storage = FakeStorage()
    app.dependency_overrides[get_storage] = lambda: fake_storage
    yield fake_storage
    app.dependency_overrides.pop(get_storage, None)


async def login(client, account, role=None):
    return await client.post('/api/v1/auth/login', json={
        'email': account.email,
        'password': 'password123',
        'role': (role or account.role).value,
    })


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_reports_realtime_connections(self, client: AsyncClient, join, student):
        join(student)

        response = await client.get('/health')

        assert response.status_code == 200
        assert response.json()['realtime_connections'] == 1


class TestAuthEndpoints:
    @pytest.mark.asyncio
    async def test_signup_then_login(self, client: AsyncClient):
        response = await client.post('/api/v1/auth/signup', json={
            'name': 'Riya Sharma',
            'email': 'riya@college.edu',
            'password': 'password123',
            'role': 'student',
            'college_name': 'Delhi University',
        })
        assert response.status_code == 201
        assert response.json()['approval_status'] == 'pending'

        response = await client.post('/api/v1/auth/login', json={
            'email': 'riya@college.edu', 'password': 'password123', 'role': 'student',
        })
        assert response.status_code == 200
        body = response.json()
        assert body['token_type'] == 'bearer'
        assert body['account']['email'] == 'riya@college.edu'

    @pytest.mark.asyncio
    async def test_admin_signup_is_refused(self, client: AsyncClient):
        response = await client.post('/api/v1/auth/signup', json={
            'name': 'Mallory', 'email': 'm@example.com', 'password': 'password123', 'role': 'admin',
        })
        assert response.status_code == 422
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_wrong_portal(self, client: AsyncClient, vendor):
        response = await login(client, vendor, role=AccountRole.STUDENT)

        assert response.status_code == 401
        assert response.json()['error']['code'] == 'WRONG_ROLE'

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get('/api/v1/auth/me')

        assert response.status_code == 401
        assert response.json()['error']['code'] == 'NOT_AUTHENTICATED'

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, client: AsyncClient, student):
        token = (await login(client, student)).json()['access_token']
        headers = {'Authorization': f'Bearer {token}'}

        assert (await client.get('/api/v1/auth/me', headers=headers)).status_code == 200
        assert (await client.post('/api/v1/auth/logout', headers=headers)).status_code == 200

        response = await client.get('/api/v1/auth/me', headers=headers)
        assert response.status_code == 401
        assert response.json()['error']['code'] == 'INVALID_TOKEN'

    @pytest.mark.asyncio
    async def test_login_history_includes_failures(self, client: AsyncClient, student, headers_for):
        await client.post('/api/v1/auth/login', json={
            'email': student.email, 'password': 'wrong-password', 'role': 'student',
        })
        await login(client, student)

        response = await client.get('/api/v1/auth/login-history', headers=headers_for(student))

        assert response.status_code == 200
        body = response.json()
        assert body['total'] == 2
        assert body['stats']['failed_attempts'] == 1
        reasons = {item['failure_reason'] for item in body['items']}
        assert 'Invalid password' in reasons


class TestAdminAccountEndpoints:
    @pytest.mark.asyncio
    async def test_approve_vendor_pushes_realtime_events(self, client: AsyncClient, admin_headers, vendor,
                                                         admin, join):
        vendor_conn = join(vendor)
        admin_conn = join(admin)

        response = await client.post(
            f'/api/v1/admin/accounts/vendor/{vendor.id}/approval',
            json={'status': 'approved', 'remarks': 'Welcome'},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()['approval_status'] == 'approved'
        assert [m['type'] for m in vendor_conn.pending_messages()] == ['account-approval-changed']
        assert [m['type'] for m in admin_conn.pending_messages()] == ['account-status-updated']

    @pytest.mark.asyncio
    async def test_pending_outcome_is_rejected(self, client: AsyncClient, admin_headers, vendor):
        response = await client.post(
            f'/api/v1/admin/accounts/vendor/{vendor.id}/approval',
            json={'status': 'pending'},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_TRANSITION'

    @pytest.mark.asyncio
    async def test_unknown_account(self, client: AsyncClient, admin_headers):
        response = await client.post(
            f'/api/v1/admin/accounts/student/{uuid.uuid4()}/verify',
            json={'status': 'verified'},
            headers=admin_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_non_admin_is_forbidden(self, client: AsyncClient, approved_vendor, headers_for, student):
        response = await client.post(
            f'/api/v1/admin/accounts/student/{student.id}/suspend',
            json={'reason': 'x'},
            headers=headers_for(approved_vendor),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_suspension_blocks_login_and_existing_tokens(self, client: AsyncClient, admin_headers,
                                                               student, headers_for):
        headers = headers_for(student)

        response = await client.post(
            f'/api/v1/admin/accounts/student/{student.id}/suspend',
            json={'reason': 'Coupon abuse'},
            headers=admin_headers,
        )
        assert response.status_code == 200

        response = await login(client, student)
        assert response.status_code == 403
        assert response.json()['error']['code'] == 'ACCOUNT_SUSPENDED'

        response = await client.get('/api/v1/auth/me', headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, client: AsyncClient, admin_headers, vendor, approved_vendor):
        response = await client.get('/api/v1/admin/accounts/vendor?approval_status=pending',
                                    headers=admin_headers)

        assert response.status_code == 200
        ids = [item['id'] for item in response.json()['items']]
        assert ids == [str(vendor.id)]

    @pytest.mark.asyncio
    async def test_delete_account(self, client: AsyncClient, admin_headers, vendor):
        response = await client.delete(f'/api/v1/admin/accounts/vendor/{vendor.id}', headers=admin_headers)

        assert response.status_code == 200
        response = await client.delete(f'/api/v1/admin/accounts/vendor/{vendor.id}', headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_create_admin(self, client: AsyncClient, admin_headers):
        response = await client.post('/api/v1/admin/accounts/admins', json={
            'name': 'Second Admin', 'email': 'ops@example.com', 'password': 'password123',
        }, headers=admin_headers)

        assert response.status_code == 201
        assert response.json()['approval_status'] == 'approved'

    @pytest.mark.asyncio
    async def test_online_listing(self, client: AsyncClient, admin_headers, student, join):
        join(student)

        response = await client.get('/api/v1/admin/realtime/online?role=student', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['online'] == [str(student.id)]


class TestOfferEndpoints:
    @pytest.mark.asyncio
    async def test_offer_lifecycle(self, client: AsyncClient, approved_vendor, approved_student, headers_for,
                                   admin_headers, join):
        student_conn = join(approved_student)

        response = await client.post('/api/v1/offers', json={
            'title': '10% off textbooks', 'discount': 10, 'discount_type': 'percentage', 'code': 'books',
        }, headers=headers_for(approved_vendor))
        assert response.status_code == 201
        offer_id = response.json()['id']

        response = await client.post(f'/api/v1/admin/offers/{offer_id}/approve', headers=admin_headers)
        assert response.status_code == 200
        assert [m['type'] for m in student_conn.pending_messages()] == ['offer-created']

        response = await client.post(f'/api/v1/offers/{offer_id}/redeem', headers=headers_for(approved_student))
        assert response.status_code == 201
        assert response.json()['code'].startswith('BOOKS-')

        response = await client.post(f'/api/v1/offers/{offer_id}/redeem', headers=headers_for(approved_student))
        assert response.status_code == 409
        assert response.json()['error']['code'] == 'ALREADY_REDEEMED'

    @pytest.mark.asyncio
    async def test_percentage_over_100_rejected(self, client: AsyncClient, approved_vendor, headers_for):
        response = await client.post('/api/v1/offers', json={
            'title': 'Too good', 'discount': 150, 'discount_type': 'percentage',
        }, headers=headers_for(approved_vendor))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_students_cannot_create_offers(self, client: AsyncClient, approved_student, headers_for):
        response = await client.post('/api/v1/offers', json={'title': 'Student deal', 'discount': 5},
                                     headers=headers_for(approved_student))

        assert response.status_code == 403


class TestNotificationEndpoints:
    @pytest.mark.asyncio
    async def test_broadcast_lands_in_student_inbox(self, client: AsyncClient, admin_headers, student,
                                                    headers_for):
        response = await client.post('/api/v1/admin/broadcasts/students',
                                     json={'message': 'Fest passes are live', 'title': 'Fest'},
                                     headers=admin_headers)
        assert response.status_code == 200
        assert response.json()['notification_id'] is not None

        headers = headers_for(student)
        response = await client.get('/api/v1/notifications', headers=headers)
        body = response.json()
        assert body['total'] == 1
        assert body['unread_count'] == 1
        notification_id = body['items'][0]['id']

        response = await client.put(f'/api/v1/notifications/{notification_id}/read', headers=headers)
        assert response.status_code == 200
        assert response.json()['is_read'] is True

        response = await client.get('/api/v1/notifications/unread-count', headers=headers)
        assert response.json()['unread_count'] == 0

        response = await client.delete(f'/api/v1/notifications/{notification_id}', headers=headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_direct_message_requires_role_with_account(self, client: AsyncClient, admin_headers, vendor):
        response = await client.post('/api/v1/admin/messages',
                                     json={'message': 'hi', 'account_id': str(vendor.id)},
                                     headers=admin_headers)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_vendor_message_reaches_admins(self, client: AsyncClient, approved_vendor, headers_for,
                                                 admin, join):
        admin_conn = join(admin)

        response = await client.post('/api/v1/vendor/messages', json={'message': 'Question about payouts'},
                                     headers=headers_for(approved_vendor))

        assert response.status_code == 200
        assert response.json()['delivered'] == 1
        assert admin_conn.pending_messages()[0]['type'] == 'vendor-message'


class TestVerificationEndpoints:
    @pytest.mark.asyncio
    async def test_upload_notifies_admins(self, client: AsyncClient, storage, student, headers_for,
                                          admin, join):
        admin_conn = join(admin)

        response = await client.post(
            '/api/v1/verification/documents',
            data={'document_type': 'student_id'},
            files={'file': ('id.pdf', b'%PDF-1.4 test', 'application/pdf')},
            headers=headers_for(student),
        )

        assert response.status_code == 201
        assert response.json()['status'] == 'pending'
        assert storage.uploads[0]['public_id'].startswith(f'verification/student/{student.id}/')
        assert admin_conn.pending_messages()[0]['type'] == 'document-submitted'

        response = await client.get('/api/v1/verification/documents', headers=headers_for(student))
        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_rejects_unsupported_file_type(self, client: AsyncClient, storage, student, headers_for):
        response = await client.post(
            '/api/v1/verification/documents',
            data={'document_type': 'student_id'},
            files={'file': ('run.exe', b'MZ', 'application/octet-stream')},
            headers=headers_for(student),
        )

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'INVALID_FILE_TYPE'
        assert storage.uploads == []

    @pytest.mark.asyncio
    async def test_admins_do_not_upload(self, client: AsyncClient, storage, admin_headers):
        response = await client.post(
            '/api/v1/verification/documents',
            data={'document_type': 'other'},
            files={'file': ('a.pdf', b'%PDF', 'application/pdf')},
            headers=admin_headers,
        )

        assert response.status_code == 403


class TestAccountSettingsEndpoints:
    @pytest.mark.asyncio
    async def test_vendor_edits_profile(self, client: AsyncClient, approved_vendor, headers_for):
        response = await client.put('/api/v1/auth/profile', json={
            'business_name': 'Campus Cafe', 'phone': '9876543210',
        }, headers=headers_for(approved_vendor))

        assert response.status_code == 200
        body = response.json()
        assert body['business_name'] == 'Campus Cafe'
        assert body['phone'] == '9876543210'
        assert body['approval_status'] == 'approved'

    @pytest.mark.asyncio
    async def test_profile_rejects_fields_of_other_roles(self, client: AsyncClient, student, headers_for):
        response = await client.put('/api/v1/auth/profile', json={'business_name': 'Side hustle'},
                                    headers=headers_for(student))

        assert response.status_code == 400
        assert response.json()['error']['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_change_password_ends_other_sessions(self, client: AsyncClient, student):
        current = {'Authorization': f"Bearer {(await login(client, student)).json()['access_token']}"}
        other = {'Authorization': f"Bearer {(await login(client, student)).json()['access_token']}"}

        response = await client.post('/api/v1/auth/change-password', json={
            'current_password': 'password123', 'new_password': 'new-password-456',
        }, headers=current)

        assert response.status_code == 200
        assert response.json()['sessions_ended'] == 1
        assert (await client.get('/api/v1/auth/me', headers=current)).status_code == 200
        assert (await client.get('/api/v1/auth/me', headers=other)).status_code == 401
        assert (await login(client, student)).status_code == 401
        response = await client.post('/api/v1/auth/login', json={
            'email': student.email, 'password': 'new-password-456', 'role': 'student',
        })
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_change_password_needs_current_password(self, client: AsyncClient, student, headers_for):
        response = await client.post('/api/v1/auth/change-password', json={
            'current_password': 'not-my-password', 'new_password': 'new-password-456',
        }, headers=headers_for(student))

        assert response.status_code == 401
        assert response.json()['error']['code'] == 'INCORRECT_PASSWORD'

    @pytest.mark.asyncio
    async def test_close_own_account(self, client: AsyncClient, student, headers_for, admin, join):
        student_conn = join(student)
        admin_conn = join(admin)

        response = await client.request('DELETE', '/api/v1/auth/account', json={
            'password': 'password123', 'confirm': 'DELETE',
        }, headers=headers_for(student))

        assert response.status_code == 200
        assert student_conn.pending_messages()[0]['type'] == 'account-deleted'
        assert [m['type'] for m in admin_conn.pending_messages()] == ['account-status-updated']
        assert (await login(client, student)).status_code == 401

    @pytest.mark.asyncio
    async def test_close_account_needs_password(self, client: AsyncClient, student, headers_for):
        response = await client.request('DELETE', '/api/v1/auth/account', json={
            'password': 'not-my-password', 'confirm': 'DELETE',
        }, headers=headers_for(student))

        assert response.status_code == 401
        assert response.json()['error']['code'] == 'INCORRECT_PASSWORD'
        assert (await client.get('/api/v1/auth/me', headers=headers_for(student))).status_code == 200

    @pytest.mark.asyncio
    async def test_close_account_needs_confirmation(self, client: AsyncClient, student, headers_for):
        response = await client.request('DELETE', '/api/v1/auth/account', json={
            'password': 'password123', 'confirm': 'yes',
        }, headers=headers_for(student))

        assert response.status_code == 422


class TestVendorOfferManagementEndpoints:
    async def create_offer(self, client, vendor, headers_for, admin_headers):
        response = await client.post('/api/v1/offers', json={
            'title': 'Free refill', 'discount': 15, 'discount_type': 'percentage',
        }, headers=headers_for(vendor))
        offer_id = response.json()['id']
        await client.post(f'/api/v1/admin/offers/{offer_id}/approve', headers=admin_headers)
        return offer_id

    @pytest.mark.asyncio
    async def test_edit_returns_offer_to_review(self, client: AsyncClient, approved_vendor, headers_for,
                                                admin_headers):
        offer_id = await self.create_offer(client, approved_vendor, headers_for, admin_headers)

        response = await client.patch(f'/api/v1/offers/{offer_id}', json={'title': 'Two free refills'},
                                      headers=headers_for(approved_vendor))

        assert response.status_code == 200
        assert response.json()['title'] == 'Two free refills'
        assert response.json()['approval_status'] == 'pending'

    @pytest.mark.asyncio
    async def test_toggle_hides_offer_from_students(self, client: AsyncClient, approved_vendor, headers_for,
                                                    admin_headers):
        offer_id = await self.create_offer(client, approved_vendor, headers_for, admin_headers)

        response = await client.post(f'/api/v1/offers/{offer_id}/toggle', headers=headers_for(approved_vendor))

        assert response.status_code == 200
        assert response.json()['is_active'] is False
        response = await client.get('/api/v1/offers/active', headers=headers_for(approved_vendor))
        assert response.json()['total'] == 0

    @pytest.mark.asyncio
    async def test_delete_offer(self, client: AsyncClient, approved_vendor, headers_for, admin_headers):
        offer_id = await self.create_offer(client, approved_vendor, headers_for, admin_headers)

        response = await client.delete(f'/api/v1/offers/{offer_id}', headers=headers_for(approved_vendor))
        assert response.status_code == 200

        response = await client.delete(f'/api/v1/offers/{offer_id}', headers=headers_for(approved_vendor))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_redeemed_offer_is_kept(self, client: AsyncClient, approved_vendor, approved_student,
                                          headers_for, admin_headers):
        offer_id = await self.create_offer(client, approved_vendor, headers_for, admin_headers)
        await client.post(f'/api/v1/offers/{offer_id}/redeem', headers=headers_for(approved_student))

        response = await client.delete(f'/api/v1/offers/{offer_id}', headers=headers_for(approved_vendor))

        assert response.status_code == 409
        assert response.json()['error']['code'] == 'PRECONDITION_FAILED'

    @pytest.mark.asyncio
    async def test_other_vendor_cannot_edit(self, client: AsyncClient, approved_vendor, make_account,
                                            headers_for, admin_headers):
        offer_id = await self.create_offer(client, approved_vendor, headers_for, admin_headers)
        rival = await make_account(AccountRole.VENDOR, approval_status=ApprovalStatus.APPROVED)

        response = await client.patch(f'/api/v1/offers/{offer_id}', json={'title': 'Mine now'},
                                      headers=headers_for(rival))

        assert response.status_code == 403


class TestAdminDashboardEndpoints:
    @pytest.mark.asyncio
    async def test_dashboard_counts(self, client: AsyncClient, admin_headers, student, approved_vendor,
                                    headers_for, join):
        join(student)
        await client.post('/api/v1/offers', json={'title': 'Half price pizza', 'discount': 50},
                          headers=headers_for(approved_vendor))

        response = await client.get('/api/v1/admin/dashboard', headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body['students']['total'] == 1
        assert body['students']['pending_approval'] == 1
        assert body['students']['online'] == 1
        assert body['vendors']['total'] == 1
        assert body['vendors']['pending_approval'] == 0
        assert body['admins']['total'] == 1
        assert body['offers']['pending_offers'] == 1

    @pytest.mark.asyncio
    async def test_offer_stats(self, client: AsyncClient, admin_headers, approved_vendor, headers_for):
        await client.post('/api/v1/offers', json={'title': 'Half price pizza', 'discount': 50},
                          headers=headers_for(approved_vendor))

        response = await client.get('/api/v1/admin/offers/stats', headers=admin_headers)

        assert response.status_code == 200
        assert response.json()['total_offers'] == 1
        assert response.json()['active_percentage'] == 100

    @pytest.mark.asyncio
    async def test_dashboard_is_admin_only(self, client: AsyncClient, student, headers_for):
        response = await client.get('/api/v1/admin/dashboard', headers=headers_for(student))

        assert response.status_code == 403
