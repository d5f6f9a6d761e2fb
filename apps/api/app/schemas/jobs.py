from pydantic import BaseModel


class DailyResetOut(BaseModel):
    processed: int
    dailyStatsCreated: int
    scalingUpdates: int
    date: str


class DeadlineMonitorOut(BaseModel):
    success: bool
    accountsChecked: int
    alertsSent: int
    notificationsSent: int
    pushNotificationsSent: int


class InactivityWarningOut(BaseModel):
    accountId: str
    accountName: str
    propFirm: str
    daysUntilDeadline: int
    userId: str


class InactivityMonitorOut(BaseModel):
    success: bool
    accountsChecked: int
    warningsSent: int
    warnings: list[InactivityWarningOut]
