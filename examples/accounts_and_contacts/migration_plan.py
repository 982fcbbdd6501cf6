"""
Example: copy accounts and contacts between two orgs.

Usage:
    orgmigrate run --file examples/accounts_and_contacts/migration_plan.py \
        --source prod --destination sandbox --yes

Artifacts are written next to this file under data/ and reference/.
"""

from orgmigrate.models.plan import PlanOverrides, Step, StepOverrides

source = "prod"
destination = "sandbox"
bulkStatusRetries = 10
bulkStatusInterval = 5


def calculate_flags(defaults):
    # Never touch production as a destination.
    if defaults.destination == "prod":
        return PlanOverrides(destination="sandbox")
    return None


def anonymize_contact(record, ctx):
    person = ctx.utils.random.person
    record["FirstName"] = person["firstName"]
    record["LastName"] = person["lastName"]
    record["Email"] = person["email"]
    record["Phone"] = person["phone"]

    account = ctx.find_reference("AccountIds", "Id", record.get("AccountId"))
    if account:
        record["Account"] = {"External_Id__c": external_id(account["Name"], ctx)}
    record.pop("AccountId", None)
    record.pop("Id", None)


def external_id(name, ctx):
    return ctx.utils.sha1(name)[:18]


def stamp_external_ids(records, ctx):
    for record in records:
        record["External_Id__c"] = external_id(record["Name"], ctx)
    return records


def only_when_sandbox(defaults):
    return StepOverrides(skip=defaults.destination != "sandbox")


def sample_leads(ctx):
    return [
        {
            "FirstName": ctx.utils.random.first_name,
            "LastName": ctx.utils.random.last_name,
            "Company": ctx.utils.random.word.title(),
            "External_Id__c": ctx.utils.random.get_string("A0", 12),
        }
        for _ in range(ctx.values.get("count", 25))
    ]


steps = [
    Step(
        name="DeleteContacts",
        query="SELECT Id FROM Contact WHERE External_Id__c != null",
        is_delete=True,
        sobject_type="Contact",
        calculate_flags=only_when_sandbox,
    ),
    Step(
        name="AccountIds",
        query="SELECT Id, Name FROM Account LIMIT 200",
        reference_only=True,
    ),
    Step(
        name="Accounts",
        query="SELECT * FROM Account LIMIT 200",
        transform_all=stamp_external_ids,
        sobject_type="Account",
        external_id="External_Id__c",
    ),
    Step(
        name="Contacts",
        query="SELECT Id, FirstName, LastName, Email, Phone, AccountId FROM Contact WHERE AccountId != null",
        references=("AccountIds",),
        transform=anonymize_contact,
        sobject_type="Contact",
        external_id="Email",
    ),
    Step(
        name="Leads",
        generate_data=sample_leads,
        sobject_type="Lead",
        external_id="External_Id__c",
        calculate_flags=lambda defaults: StepOverrides(values={"count": 50}),
    ),
    Step(
        name="RecalculateSharing",
        apex_code_file="scripts/recalculate_sharing.apex",
    ),
]
