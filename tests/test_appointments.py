"""Booking, overlap detection, status transitions, completion and bulk scheduling."""
from datetime import timedelta

import pytest

from cognicare.extensions import db
from cognicare.models import Appointment, EHRRecord
from cognicare.models.base import utcnow
from cognicare.repositories.appointments import TRANSITIONS, validate_transition
from cognicare.errors import AlreadyFinalized, InvalidTransition

from conftest import future


@pytest.fixture
def patient(tenant, make_patient):
    return make_patient(tenant.clinic)


def book(client, headers, tenant, patient, when, doctor=None, **extra):
    payload = {
        'patient_id': patient.id,
        'clinic_id': tenant.clinic.id,
        'appointment_date': when,
        **extra,
    }
    if doctor is not None:
        payload['doctor_id'] = doctor.id
    return client.post('/api/appointments', headers=headers, json=payload)


def set_status(client, headers, appointment_id, status, **extra):
    return client.put(f'/api/appointments/{appointment_id}', headers=headers, json={'status': status, **extra})


class TestBooking:

    def test_overlap_window(self, client, tenant, patient):
        first = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor, duration=30)
        assert first.status_code == 201

        clash = book(client, tenant.admin_headers, tenant, patient, future(24, 15), tenant.doctor, duration=30)
        assert clash.status_code == 409
        body = clash.get_json()
        assert body['code'] == 'SCHEDULING_CONFLICT'
        assert body['details']['conflicting_appointment']['id'] == first.get_json()['appointment']['id']

        later = book(client, tenant.admin_headers, tenant, patient, future(24, 45), tenant.doctor, duration=30)
        assert later.status_code == 201

    def test_window_is_inclusive(self, client, tenant, patient):
        book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor, duration=30)
        response = book(client, tenant.admin_headers, tenant, patient, future(24, 30), tenant.doctor, duration=30)
        assert response.status_code == 409

    def test_short_booking_inside_long_booking(self, client, tenant, patient):
        long_visit = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor, duration=240)
        assert long_visit.status_code == 201

        inside = book(client, tenant.admin_headers, tenant, patient, future(25), tenant.doctor, duration=15)
        assert inside.status_code == 409
        assert inside.get_json()['details']['conflicting_appointment']['id'] == \
            long_visit.get_json()['appointment']['id']

        after = book(client, tenant.admin_headers, tenant, patient, future(28, 15), tenant.doctor, duration=15)
        assert after.status_code == 201

    def test_other_doctor_is_free(self, client, tenant, patient):
        book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor)
        response = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.other_doctor)
        assert response.status_code == 201

    def test_cancelled_booking_frees_the_slot(self, client, tenant, patient):
        first = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor).get_json()['appointment']
        client.delete(f"/api/appointments/{first['id']}", headers=tenant.admin_headers)
        response = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor)
        assert response.status_code == 201

    def test_past_time_is_rejected(self, client, tenant, patient):
        past = (utcnow() - timedelta(hours=1)).isoformat()
        response = book(client, tenant.admin_headers, tenant, patient, past, tenant.doctor)
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_SCHEDULE'

    def test_doctor_defaults_to_self(self, client, tenant, patient):
        response = book(client, tenant.doctor_headers, tenant, patient, future(24))
        assert response.status_code == 201
        assert response.get_json()['appointment']['doctor_id'] == tenant.doctor.id

    def test_assignee_must_be_a_doctor(self, client, tenant, patient):
        response = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.staff)
        assert response.status_code == 400

    def test_duration_bounds(self, client, tenant, patient):
        response = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor, duration=5)
        assert response.status_code == 400

    def test_staff_cannot_book(self, client, tenant, patient):
        response = book(client, tenant.staff_headers, tenant, patient, future(24), tenant.doctor)
        assert response.status_code == 403

    def test_reschedule_rechecks_overlap_excluding_itself(self, client, tenant, patient):
        first = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor).get_json()['appointment']
        book(client, tenant.admin_headers, tenant, patient, future(26), tenant.doctor)

        moved = client.put(f"/api/appointments/{first['id']}", headers=tenant.admin_headers,
                           json={'appointment_date': future(24, 10)})
        assert moved.status_code == 200

        clash = client.put(f"/api/appointments/{first['id']}", headers=tenant.admin_headers,
                           json={'appointment_date': future(26, 10)})
        assert clash.status_code == 409


class TestVisibility:

    def test_staff_sees_all_doctor_sees_own(self, client, tenant, patient):
        book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor)
        book(client, tenant.admin_headers, tenant, patient, future(30), tenant.other_doctor)

        staff_view = client.get('/api/appointments', headers=tenant.staff_headers).get_json()
        doctor_view = client.get('/api/appointments', headers=tenant.doctor_headers).get_json()

        assert staff_view['pagination']['total'] == 2
        assert doctor_view['pagination']['total'] == 1
        assert doctor_view['appointments'][0]['doctor_id'] == tenant.doctor.id

    def test_doctor_cannot_open_colleagues_appointment(self, client, tenant, patient):
        other = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.other_doctor).get_json()['appointment']
        response = client.get(f"/api/appointments/{other['id']}", headers=tenant.doctor_headers)
        assert response.status_code == 404

    def test_filter_by_date_and_status(self, client, tenant, patient):
        book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor)
        book(client, tenant.admin_headers, tenant, patient, future(24 * 5), tenant.doctor)
        day = future(24)[:10]

        body = client.get(f'/api/appointments?date={day}&status=scheduled', headers=tenant.staff_headers).get_json()
        assert body['pagination']['total'] == 1


class TestTransitions:

    def test_table_is_closed_over_statuses(self):
        for targets in TRANSITIONS.values():
            assert targets <= set(TRANSITIONS)

    def test_skipping_to_completed_is_rejected(self):
        with pytest.raises(InvalidTransition):
            validate_transition('SCHEDULED', 'COMPLETED')

    def test_terminal_states(self):
        with pytest.raises(AlreadyFinalized):
            validate_transition('CANCELLED', 'SCHEDULED')
        with pytest.raises(AlreadyFinalized):
            validate_transition('COMPLETED', 'IN_PROGRESS')

    def test_status_update_through_api(self, client, tenant, patient):
        appointment = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor).get_json()['appointment']
        assert set_status(client, tenant.doctor_headers, appointment['id'], 'CONFIRMED').status_code == 200

        response = set_status(client, tenant.doctor_headers, appointment['id'], 'SCHEDULED')
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_STATUS_TRANSITION'

    def test_put_completed_from_scheduled_is_rejected(self, client, tenant, patient):
        appointment = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor).get_json()['appointment']
        response = set_status(client, tenant.admin_headers, appointment['id'], 'COMPLETED',
                              diagnosis='Flu', prescription='Rest')
        assert response.status_code == 400


class TestCancellation:

    def test_cancel(self, client, tenant, patient):
        appointment = book(client, tenant.admin_headers, tenant, patient, future(24), tenant.doctor).get_json()['appointment']
        response = client.delete(f"/api/appointments/{appointment['id']}", headers=tenant.admin_headers)
        assert response.status_code == 200
        assert response.get_json()['appointment']['status'] == 'CANCELLED'

        again = client.delete(f"/api/appointments/{appointment['id']}", headers=tenant.admin_headers)
        assert again.status_code == 409
        assert again.get_json()['code'] == 'ALREADY_FINALIZED'

    def test_past_appointment_cannot_be_cancelled(self, client, tenant, patient):
        past = Appointment(patient_id=patient.id, doctor_id=tenant.doctor.id, clinic_id=tenant.clinic.id,
                           appointment_date=utcnow() - timedelta(hours=2), duration=30, status='SCHEDULED')
        db.session.add(past)
        db.session.commit()

        response = client.delete(f'/api/appointments/{past.id}', headers=tenant.admin_headers)
        assert response.status_code == 400
        assert response.get_json()['code'] == 'APPOINTMENT_IN_PAST'


class TestCompletion:

    def start_visit(self, client, tenant, patient):
        appointment = book(client, tenant.doctor_headers, tenant, patient, future(24)).get_json()['appointment']
        set_status(client, tenant.doctor_headers, appointment['id'], 'CONFIRMED')
        set_status(client, tenant.doctor_headers, appointment['id'], 'IN_PROGRESS')
        return appointment['id']

    def test_complete_writes_ehr_record(self, client, tenant, patient):
        appointment_id = self.start_visit(client, tenant, patient)
        follow_up = (utcnow() + timedelta(days=7)).date().isoformat()

        response = client.post(f'/api/appointments/{appointment_id}/complete', headers=tenant.doctor_headers, json={
            'diagnosis': 'Viral fever',
            'prescription': 'Paracetamol 500mg',
            'follow_up_date': follow_up,
            'chief_complaint': 'Fever for three days',
        })
        appointment = response.get_json()['appointment']
        assert response.status_code == 200
        assert appointment['status'] == 'COMPLETED'
        assert appointment['follow_up_date'] == follow_up

        record = EHRRecord.query.filter_by(appointment_id=appointment_id).one()
        assert record.diagnosis == 'Viral fever'
        assert record.doctor_id == tenant.doctor.id

    def test_complete_requires_outcome(self, client, tenant, patient):
        appointment_id = self.start_visit(client, tenant, patient)
        response = client.post(f'/api/appointments/{appointment_id}/complete', headers=tenant.doctor_headers,
                               json={'diagnosis': 'Viral fever'})
        assert response.status_code == 400
        assert EHRRecord.query.count() == 0

    def test_complete_requires_in_progress(self, client, tenant, patient):
        appointment = book(client, tenant.doctor_headers, tenant, patient, future(24)).get_json()['appointment']
        response = client.post(f"/api/appointments/{appointment['id']}/complete", headers=tenant.doctor_headers,
                               json={'diagnosis': 'Flu', 'prescription': 'Rest'})
        assert response.status_code == 400


class TestBulkSchedule:

    def test_items_are_independent(self, client, tenant, patient):
        items = [
            {'patient_id': patient.id, 'doctor_id': tenant.doctor.id, 'clinic_id': tenant.clinic.id,
             'appointment_date': future(24)},
            {'patient_id': patient.id, 'doctor_id': tenant.doctor.id, 'clinic_id': tenant.clinic.id,
             'appointment_date': future(24, 10)},
            {'patient_id': 'missing', 'doctor_id': tenant.doctor.id, 'clinic_id': tenant.clinic.id,
             'appointment_date': future(28)},
            {'patient_id': patient.id, 'doctor_id': tenant.doctor.id, 'clinic_id': tenant.clinic.id,
             'appointment_date': future(30)},
        ]
        response = client.post('/api/appointments/bulk-schedule', headers=tenant.admin_headers,
                               json={'appointments': items})
        summary = response.get_json()['summary']

        assert response.status_code == 200
        assert summary['total'] == 4
        assert summary['successful'] == 2
        assert summary['conflicts'] == 1
        assert summary['failed'] == 1
        assert Appointment.query.count() == 2
