"""payroll initial schema (companies, employees, settings, structures, runs, records)

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name, **kw):
    return sa.Column(name, sa.Numeric(14, 2), **kw)


def upgrade() -> None:
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=50), nullable=False, unique=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True, unique=True),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('esic_number', sa.String(length=32), nullable=True),
        sa.Column('uan_number', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('company_id', 'code', name='uq_employee_company_code'),
    )
    op.create_index('ix_emp_company_id', 'employees', ['company_id'], unique=False)

    op.create_table(
        'payroll_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False, unique=True),
        sa.Column('hra_percentage', sa.Numeric(7, 4), nullable=True),
        sa.Column('esic_employee_percentage', sa.Numeric(7, 4), nullable=True),
        sa.Column('esic_employer_percentage', sa.Numeric(7, 4), nullable=True),
        sa.Column('pf_employee_percentage', sa.Numeric(7, 4), nullable=True),
        sa.Column('pf_employer_percentage', sa.Numeric(7, 4), nullable=True),
        sa.Column('mlwf_employer_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('standard_working_days', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    tax_regime = sa.Enum('old', 'new', name='tax_regime_enum')
    op.create_table(
        'employee_salary_structures',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False, unique=True),
        _money('basic', nullable=False, server_default='0'),
        _money('da', nullable=False, server_default='0'),
        sa.Column('total_days', sa.Numeric(6, 2), nullable=False, server_default='30'),
        sa.Column('paid_days', sa.Numeric(6, 2), nullable=False, server_default='30'),
        sa.Column('single_ot_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('double_ot_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        _money('difference', nullable=False, server_default='0'),
        _money('advance', nullable=False, server_default='0'),
        sa.Column('is_skill_based', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('skill_category', sa.String(length=60), nullable=True),
        _money('skill_amount', nullable=False, server_default='0'),
        sa.Column('custom_allowances', sa.JSON(), nullable=True),
        sa.Column('custom_bonuses', sa.JSON(), nullable=True),
        sa.Column('custom_deductions', sa.JSON(), nullable=True),
        sa.Column('tax_regime', tax_regime, nullable=False, server_default='old'),
        sa.Column('breakdown', sa.JSON(), nullable=True),
        _money('gross_salary', nullable=False, server_default='0'),
        _money('net_salary', nullable=False, server_default='0'),
        _money('tax_amount', nullable=False, server_default='0'),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    run_status = sa.Enum('processing', 'processed', 'partial', name='payrun_status_enum')
    op.create_table(
        'pay_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('status', run_status, nullable=False, server_default='processing'),
        sa.Column('totals', sa.JSON(), nullable=True),
        sa.Column('processed_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('company_id', 'year', 'month', name='uq_pay_run_company_period'),
    )

    record_status = sa.Enum('pending', 'approved', 'paid', name='payroll_record_status_enum')
    op.create_table(
        'payroll_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pay_run_id', sa.Integer(), sa.ForeignKey('pay_runs.id'), nullable=False),
        sa.Column('company_id', sa.Integer(), sa.ForeignKey('companies.id'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        *[_money(c, nullable=True) for c in (
            'basic', 'da', 'hra', 'gross_salary', 'total_deduction', 'net_salary', 'tax_amount',
            'professional_tax', 'esic_employee', 'pf_employee', 'esic_employer', 'pf_employer',
            'mlwf_employer', 'ctc_per_month',
        )],
        sa.Column('breakdown', sa.JSON(), nullable=True),
        sa.Column('reconciled', sa.Boolean(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.Column('status', record_status, nullable=False, server_default='pending'),
        sa.Column('processed_by', sa.String(length=64), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'year', 'month', name='uq_payroll_record_emp_period'),
    )
    op.create_index('ix_payroll_records_pay_run_id', 'payroll_records', ['pay_run_id'], unique=False)
    op.create_index('ix_payroll_records_company_id', 'payroll_records', ['company_id'], unique=False)
    op.create_index('ix_payroll_records_employee_id', 'payroll_records', ['employee_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payroll_records_employee_id', table_name='payroll_records')
    op.drop_index('ix_payroll_records_company_id', table_name='payroll_records')
    op.drop_index('ix_payroll_records_pay_run_id', table_name='payroll_records')
    op.drop_table('payroll_records')
    op.drop_table('pay_runs')
    op.drop_table('employee_salary_structures')
    op.drop_table('payroll_settings')
    op.drop_index('ix_emp_company_id', table_name='employees')
    op.drop_table('employees')
    op.drop_table('companies')

    bind = op.get_bind()
    for name in ('payroll_record_status_enum', 'payrun_status_enum', 'tax_regime_enum'):
        sa.Enum(name=name).drop(bind, checkfirst=True)
