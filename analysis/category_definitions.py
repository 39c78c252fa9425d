#!/usr/bin/env python3
"""
Category definitions for the Servicing Insights categorizer.

The table is data, not control flow: categories are evaluated in the order
they appear here, subcategories highest weight first. Tuning a keyword or a
weight never requires touching the categorizer itself.
"""

import os
import logging
from typing import List, Tuple

import pandas as pd

from analysis.models import CategoryDefinition, SubcategoryDefinition

logger = logging.getLogger(__name__)

CSV_COLUMNS = ['category', 'category_keywords', 'subcategory', 'subcategory_keywords', 'weight']
KEYWORD_SEPARATOR = '|'


def _category(name: str, keywords: List[str], subcategories: List[Tuple[str, List[str], int]]) -> CategoryDefinition:
    return CategoryDefinition(
        name=name,
        keywords=tuple(keywords),
        subcategories=tuple(
            SubcategoryDefinition(name=sub_name, keywords=tuple(sub_keywords), weight=weight)
            for sub_name, sub_keywords, weight in subcategories
        ),
    )


DEFAULT_CATEGORY_DEFINITIONS = (
    _category('Payment Issues', ['payment', 'pay', 'autopay', 'ach', 'paying', 'bill'], [
        ('First Payment Assistance', ['first payment', 'initial payment', 'how to pay', 'where do i send',
                                      'payment address', 'where to pay', 'payment location'], 100),
        ('Payment Failure', ['declined', 'failed', "didn't go through", 'bounced', 'rejected', 'payment error'], 95),
        ('Duplicate Payment', ['duplicate', 'charged twice', 'double payment', 'paid twice', 'multiple charges'], 90),
        ('Autopay/Recurring Payment Issues', ['autopay', 'recurring', 'automatic payment', 'auto pay',
                                              'scheduled payment'], 85),
        ('Payment Location Confusion', ['where do i send', 'payment address', 'where to mail', 'payment location',
                                        'send payment'], 80),
        ('General Payment Inquiry', ['payment', 'pay'], 50),
    ]),
    _category('Account Access', ['login', 'password', 'access', 'locked out', 'account'], [
        ('Password/Login Issues', ['password', 'reset', 'forgot password', "can't log in", 'login problem',
                                   'locked out'], 95),
        ('Account Locked', ['locked', 'frozen', 'suspended', 'disabled account', 'account locked'], 90),
        ('Registration Issues', ['register', 'sign up', 'create account', 'new account', 'registration'], 85),
        ('General Access Issues', ['access', 'login'], 50),
    ]),
    _category('Loan Transfer', ['transfer', 'servicer', 'sold my loan', 'boarding', 'new servicer'], [
        ('Post-Transfer Payment Confusion', ['where do i pay', 'transfer', 'new servicer', 'where to send payment'], 95),
        ('Missing Transfer Notice', ["didn't receive", 'notice', 'transfer letter', 'no notification',
                                     'never got notice'], 90),
        ('Transfer Status Inquiry', ['when will transfer', 'transfer date', 'is my loan transferred',
                                     'transfer status'], 85),
        ('General Transfer Inquiry', ['transfer', 'sold'], 50),
    ]),
    _category('Document Requests', ['document', 'statement', 'payoff', 'letter', 'copy', 'paperwork'], [
        ('Payoff Statement', ['payoff', 'payoff quote', 'payoff amount', 'payoff letter', 'closing',
                              'refinancing'], 95),
        ('Mortgage Statement', ['mortgage statement', 'statement', 'billing statement', 'monthly statement'], 90),
        ('Tax Documents', ['1098', 'tax', 'tax document', 'tax form', '1099'], 85),
        ('Insurance Documents', ['insurance', 'hazard insurance', 'homeowners insurance',
                                 'insurance certificate'], 80),
        ('General Document Request', ['document', 'copy', 'send me'], 50),
    ]),
    _category('Escrow', ['escrow', 'tax', 'insurance', 'impound'], [
        ('Escrow Analysis', ['escrow analysis', 'escrow review', 'escrow adjustment', 'escrow shortage',
                             'escrow surplus'], 95),
        ('Tax Payment Issues', ['property tax', 'tax payment', 'tax bill', 'taxes not paid'], 90),
        ('Insurance Payment Issues', ['insurance payment', 'homeowners insurance', 'insurance not paid',
                                      'insurance lapse'], 85),
        ('General Escrow Inquiry', ['escrow'], 50),
    ]),
    _category('Escalation', ['supervisor', 'manager', 'complaint', 'escalate', 'lawyer', 'attorney', 'legal'], [
        ('Customer Escalation', ['speak to supervisor', 'talk to manager', 'escalate', 'supervisor', 'manager'], 100),
        ('Formal Complaint', ['complaint', 'file a complaint', 'formal complaint', 'complain'], 95),
        ('Legal Threat', ['lawyer', 'attorney', 'legal action', 'sue', 'lawsuit', 'legal'], 90),
        ('General Escalation', ['escalate', 'unacceptable'], 50),
    ]),
    _category('Voice/Alert Requests', ['voice', 'alert', 'notification', 'text', 'call preference'], [
        ('Voice Preference', ['voice preference', 'calling preference', 'stop calling', 'do not call',
                              'communication preference'], 90),
        ('Alert Setup', ['alert', 'notification', 'text message', 'email alert', 'set up alert'], 85),
        ('General Voice/Alert Request', ['voice', 'alert'], 50),
    ]),
    _category('Loan Information', ['loan info', 'account information', 'balance', 'interest rate', 'loan details'], [
        ('Balance Inquiry', ['balance', 'current balance', 'principal balance', 'what do i owe', 'amount owed'], 90),
        ('Interest Rate Inquiry', ['interest rate', 'rate', 'apr', 'current rate'], 85),
        ('Loan Details', ['loan details', 'account details', 'loan information'], 80),
        ('Payment History', ['payment history', 'past payments', 'payment record'], 75),
        ('General Loan Inquiry', ['information', 'info'], 50),
    ]),
    _category('Loan Modifications', ['modification', 'loan change', 'refinance', 'forbearance', 'hardship'], [
        ('Forbearance Request', ['forbearance', 'hardship', 'financial difficulty', "can't pay", 'payment relief'], 95),
        ('Loan Modification', ['modification', 'loan mod', 'modify loan', 'change terms'], 90),
        ('Refinance Inquiry', ['refinance', 'refi', 'refinancing'], 85),
        ('General Modification Inquiry', ['change', 'modification'], 50),
    ]),
    _category('Automated System Messages', ['automated', 'system message', 'auto-generated', 'automatic'], [
        ('System Generated', ['automated', 'system message', 'auto-generated'], 100),
    ]),
    _category('Communication', ['forward', 'forwarded', 'communication', 'update'], [
        ('Forwarded Message', ['forwarded', 'forward', 'fwd'], 90),
        ('Update Request', ['update', 'status update', 'follow up'], 80),
        ('General Communication', ['communication'], 50),
    ]),
)


def _split_keywords(value) -> List[str]:
    if pd.isna(value):
        return []
    return [kw.strip().lower() for kw in str(value).split(KEYWORD_SEPARATOR) if kw.strip()]


def _parse_category_dataframe(df: pd.DataFrame) -> Tuple[CategoryDefinition, ...]:
    """Build definitions from one row per subcategory, keeping first-appearance category order"""
    missing = [col for col in CSV_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Missing columns: {', '.join(missing)}")

    order = []
    keywords = {}
    subcategories = {}

    for row in df.to_dict('records'):
        name = str(row['category']).strip()
        if name not in keywords:
            order.append(name)
            keywords[name] = []
            subcategories[name] = []

        for kw in _split_keywords(row['category_keywords']):
            if kw not in keywords[name]:
                keywords[name].append(kw)

        subcategories[name].append(SubcategoryDefinition(
            name=str(row['subcategory']).strip(),
            keywords=tuple(_split_keywords(row['subcategory_keywords'])),
            weight=int(row['weight']),
        ))

    return tuple(
        CategoryDefinition(name=name, keywords=tuple(keywords[name]), subcategories=tuple(subcategories[name]))
        for name in order
    )


def load_category_definitions(csv_path: str = None) -> Tuple[CategoryDefinition, ...]:
    """
    Load category definitions from a CSV file

    Args:
        csv_path: CSV with one row per subcategory (keywords separated by "|")

    Returns:
        Category definitions; the built-in table when the file is missing or unusable
    """
    if not csv_path:
        return DEFAULT_CATEGORY_DEFINITIONS

    if not os.path.exists(csv_path):
        logger.warning(f"Categories file {csv_path} not found, using defaults")
        return DEFAULT_CATEGORY_DEFINITIONS

    try:
        df = pd.read_csv(csv_path)
        definitions = _parse_category_dataframe(df)
    except (ValueError, KeyError, OSError, pd.errors.ParserError) as e:
        logger.error(f"Error loading categories from {csv_path}: {str(e)}")
        return DEFAULT_CATEGORY_DEFINITIONS

    if not definitions:
        logger.warning(f"Categories file {csv_path} is empty, using defaults")
        return DEFAULT_CATEGORY_DEFINITIONS

    logger.info(f"Loaded {len(definitions)} categories from {csv_path}")
    return definitions
