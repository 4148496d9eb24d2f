"""
Tests for SES summary and alert emails.
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import patch
from botocore.exceptions import ClientError
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.models import ProcessingResult, RunSummary, SubmissionRecord
from services import notifications


NOW = datetime(2026, 3, 10, 15, 30, tzinfo=timezone.utc)


def _summary(sent=1, errors=0, rate_limited=False):
    summary = RunSummary()
    submissions = [
        SubmissionRecord(f'1Z999AA1012345678{i}', 'ups', 'Acme <Store>', '2026-03-10T12:00:00Z', True)
        for i in range(sent)
    ]
    summary.add_result(ProcessingResult(
        success=True,
        message_id='m1',
        tracking_found=sent,
        submissions=submissions,
        rate_limit_reached=rate_limited
    ))
    for i in range(errors):
        summary.add_result(ProcessingResult(success=False, message_id=f'e{i}', error_message='S3 error'))
    return summary


def _sent_message(mock_ses_client):
    kwargs = mock_ses_client.send_email.call_args[1]
    return kwargs['Message']['Subject']['Data'], kwargs['Message']['Body']['Html']['Data']


@pytest.fixture
def recipient():
    with patch('services.notifications.SUMMARY_EMAIL_ADDRESS', 'tracker@example.com'), \
            patch('services.notifications.SUMMARY_SENDER_ADDRESS', 'tracker@example.com'):
        yield


class TestSendEmail:
    """Test the SES send wrapper."""

    @patch('services.notifications.ses_client')
    def test_send(self, mock_ses_client, recipient):
        """Test the message is addressed to the summary recipient."""
        mock_ses_client.send_email.return_value = {'MessageId': 'ses-1'}

        assert notifications._send_email('Subject', '<p>Hi</p>') is True

        kwargs = mock_ses_client.send_email.call_args[1]
        assert kwargs['Source'] == 'tracker@example.com'
        assert kwargs['Destination'] == {'ToAddresses': ['tracker@example.com']}
        assert kwargs['Message']['Body']['Html']['Data'] == '<p>Hi</p>'

    @patch('services.notifications.ses_client')
    def test_no_recipient(self, mock_ses_client):
        """Test nothing is sent without an address."""
        with patch('services.notifications.SUMMARY_EMAIL_ADDRESS', ''):
            assert notifications._send_email('Subject', '<p>Hi</p>') is False

        mock_ses_client.send_email.assert_not_called()

    @patch('services.notifications.ses_client')
    def test_ses_error(self, mock_ses_client, recipient):
        """Test SES errors are logged, not raised."""
        mock_ses_client.send_email.side_effect = ClientError(
            {'Error': {'Code': 'MessageRejected', 'Message': 'Email address is not verified'}},
            'SendEmail'
        )

        assert notifications._send_email('Subject', '<p>Hi</p>') is False


class TestBuildTrackingTable:
    """Test the tracking table markup."""

    def test_rows_are_linked_and_escaped(self):
        """Test each record links to its carrier page."""
        records = [SubmissionRecord('1Z999AA10123456784', 'ups', 'Acme <Store>', '', True)]

        table = notifications.build_tracking_table(records)

        assert '<td>UPS</td>' in table
        assert 'https://www.ups.com/track?tracknum=1Z999AA10123456784' in table
        assert 'Acme &lt;Store&gt;' in table

    def test_unknown_carrier_placeholder_link(self):
        """Test unknown carriers get a placeholder link."""
        table = notifications.build_tracking_table([SubmissionRecord('X123', 'dhl', None, '', True)])

        assert 'href="#"' in table


class TestSendRunSummary:
    """Test the per-run report."""

    @patch('services.notifications.ses_client')
    def test_sync_report(self, mock_ses_client, recipient):
        """Test the report lists added numbers and quota usage."""
        with patch.object(notifications.state, 'get_today_api_call_count', return_value=5):
            assert notifications.send_run_summary(_summary(sent=2), NOW) is True

        subject, body = _sent_message(mock_ses_client)
        assert subject == 'Parcel Tracker Sync - 2 Added'
        assert '1Z999AA10123456780' in body
        assert f'Quota: 5 / {notifications.state.DAILY_RATE_LIMIT} used.' in body

    @patch('services.notifications.ses_client')
    def test_disabled(self, mock_ses_client, recipient):
        """Test SEND_EMAIL_SUMMARY turns the report off."""
        with patch('services.notifications.SEND_EMAIL_SUMMARY', False):
            assert notifications.send_run_summary(_summary(), NOW) is False

        mock_ses_client.send_email.assert_not_called()

    @patch('services.notifications.ses_client')
    def test_limit_alert_first_of_day(self, mock_ses_client, recipient):
        """Test the limit alert is sent and the day marked."""
        with patch.object(notifications.state, 'sent_today', return_value=False), \
                patch.object(notifications.state, 'mark_sent_today') as mock_mark, \
                patch.object(notifications.state, 'get_today_api_call_count', return_value=20):
            assert notifications.send_run_summary(_summary(sent=0, rate_limited=True), NOW) is True

        mock_mark.assert_called_once_with(notifications.LIMIT_ALERT_MARKER, NOW)
        subject, _ = _sent_message(mock_ses_client)
        assert subject == 'Parcel Tracker - Limit Reached'

    @patch('services.notifications.ses_client')
    def test_failed_limit_alert_not_marked(self, mock_ses_client, recipient):
        """Test a limit alert SES rejected is not recorded for the day."""
        mock_ses_client.send_email.side_effect = ClientError(
            {'Error': {'Code': 'Throttling', 'Message': 'Rate exceeded'}}, 'SendEmail'
        )
        with patch.object(notifications.state, 'sent_today', return_value=False), \
                patch.object(notifications.state, 'mark_sent_today') as mock_mark, \
                patch.object(notifications.state, 'get_today_api_call_count', return_value=20):
            assert notifications.send_run_summary(_summary(sent=0, rate_limited=True), NOW) is False

        mock_ses_client.send_email.assert_called_once()
        mock_mark.assert_not_called()

    @patch('services.notifications.ses_client')
    def test_limit_alert_once_per_day(self, mock_ses_client, recipient):
        """Test a second limit alert on the same day is suppressed."""
        with patch.object(notifications.state, 'sent_today', return_value=True), \
                patch.object(notifications.state, 'mark_sent_today') as mock_mark:
            assert notifications.send_run_summary(_summary(sent=0, rate_limited=True), NOW) is False

        mock_mark.assert_not_called()
        mock_ses_client.send_email.assert_not_called()


class TestSendDailySummary:
    """Test the daily digest email."""

    @patch('services.notifications.ses_client')
    def test_daily_summary(self, mock_ses_client, recipient):
        """Test totals and records appear in the email."""
        daily = {
            'date': '2026-03-10',
            'total_emails_scanned': 7,
            'total_successfully_sent': 1,
            'tracking_details': [SubmissionRecord('9400111899223197428490', 'usps', 'Etsy', '', True).to_dict()],
            'errors': [],
        }

        assert notifications.send_daily_summary(daily) is True

        subject, body = _sent_message(mock_ses_client)
        assert subject == 'Daily Parcel Tracker Summary - 1 Added'
        assert 'Emails Scanned:</b> 7' in body
        assert '9400111899223197428490' in body

    @patch('services.notifications.ses_client')
    def test_disabled(self, mock_ses_client, recipient):
        """Test SEND_DAILY_SUMMARY turns the digest off."""
        with patch('services.notifications.SEND_DAILY_SUMMARY', False):
            assert notifications.send_daily_summary({'total_successfully_sent': 1}) is False

        mock_ses_client.send_email.assert_not_called()


class TestSendErrorNotification:
    """Test the error alert email."""

    @patch('services.notifications.ses_client')
    def test_errors_listed(self, mock_ses_client, recipient):
        """Test each error is listed."""
        assert notifications.send_error_notification(_summary(sent=0, errors=2)) is True

        subject, body = _sent_message(mock_ses_client)
        assert subject == 'Parcel Tracker - Errors'
        assert '<li>e0: S3 error</li>' in body
        assert '<li>e1: S3 error</li>' in body

    @patch('services.notifications.ses_client')
    def test_no_errors(self, mock_ses_client, recipient):
        """Test nothing is sent for a clean run."""
        assert notifications.send_error_notification(_summary()) is False

        mock_ses_client.send_email.assert_not_called()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
