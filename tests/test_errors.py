from openclawd.modules import errors


def test_custom_errors_are_distinct():
    excs = [
        errors.ProbeError,
        errors.ProvisionError,
        errors.DownloadError,
        errors.PatchError,
        errors.GatewayLaunchError,
    ]
    instances = [exc("message") for exc in excs]
    assert all(isinstance(inst, errors.OpenclawdError) for inst in instances)
    assert len({type(inst) for inst in instances}) == len(excs)


def test_extraction_failed_carries_code_and_output():
    err = errors.ExtractionFailed(2, "disk full")
    assert isinstance(err, errors.ProvisionError)
    assert err.exit_code == 2
    assert err.output == "disk full"
    assert "2" in str(err) and "disk full" in str(err)


def test_precondition_error_remedy():
    err = errors.PreconditionError("OpenClaw não está instalado.", remedy="npm install -g openclaw")
    assert err.remedy == "npm install -g openclaw"
    assert errors.PreconditionError("x").remedy is None
